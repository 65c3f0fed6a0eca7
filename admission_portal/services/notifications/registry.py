from typing import Any, Dict, List, NamedTuple, Optional

from admission_portal.utils.logging import get_logger

logger = get_logger()


class NotificationTemplate(NamedTuple):
    subject: str
    body: str


class NotificationTemplateRegistry:
    """Registry of message templates keyed by notification code"""

    _templates: Dict[str, NotificationTemplate] = {
        "application_submitted": NotificationTemplate(
            subject="Application {application_id} submitted",
            body=(
                "Application {application_id} has been submitted and is now "
                "under review."
            ),
        ),
        "application_documents_reviewed": NotificationTemplate(
            subject="Documents reviewed for {application_id}",
            body=(
                "Documents of application {application_id} were reviewed: "
                "{approved} approved, {pending} pending."
            ),
        ),
        "application_documents_rejected": NotificationTemplate(
            subject="Document rejected for {application_id}",
            body=(
                "One or more documents of application {application_id} were "
                "rejected. Reason: {remarks}. Please re-upload with corrections."
            ),
        ),
        "application_approved": NotificationTemplate(
            subject="Application {application_id} approved",
            body="Congratulations! Application {application_id} has been approved.",
        ),
        "application_rejected": NotificationTemplate(
            subject="Application {application_id} rejected",
            body="Application {application_id} has been rejected. Reason: {remarks}.",
        ),
        "application_resubmission_requested": NotificationTemplate(
            subject="Changes requested for {application_id}",
            body=(
                "Staff requested changes to application {application_id}: {remarks}"
            ),
        ),
        "application_resubmitted": NotificationTemplate(
            subject="Application {application_id} resubmitted",
            body="Application {application_id} has been resubmitted for review.",
        ),
        "application_withdrawn": NotificationTemplate(
            subject="Application {application_id} withdrawn",
            body="Application {application_id} has been withdrawn.",
        ),
    }

    @classmethod
    def get_template(cls, notification_code: str) -> Optional[NotificationTemplate]:
        template = cls._templates.get(notification_code)
        if template is None:
            logger.warning(
                f"No template registered for notification code: {notification_code}"
            )
        return template

    @classmethod
    def render(
        cls, notification_code: str, data: Dict[str, Any]
    ) -> Optional[NotificationTemplate]:
        """Fill a template; a missing placeholder falls back to the raw template"""
        template = cls.get_template(notification_code)
        if template is None:
            return None
        try:
            return NotificationTemplate(
                subject=template.subject.format(**data),
                body=template.body.format(**data),
            )
        except KeyError as e:
            logger.error(f"Template error for {notification_code}: missing {e}")
            return template

    @classmethod
    def register_template(
        cls, notification_code: str, template: NotificationTemplate
    ) -> None:
        cls._templates[notification_code] = template
        logger.info(f"Registered template for notification code: {notification_code}")

    @classmethod
    def list_registered_codes(cls) -> List[str]:
        return list(cls._templates.keys())

    @classmethod
    def is_registered(cls, notification_code: str) -> bool:
        return notification_code in cls._templates
