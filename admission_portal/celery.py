from celery import Celery

# Create Celery app
celery = Celery("admission_portal")

# Load configuration from admission_portal.config.celeryconfig module
celery.config_from_object("admission_portal.config.celeryconfig")
