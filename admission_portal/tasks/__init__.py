from .notification_sender import send_notification_task

__all__ = ["send_notification_task"]
