from .base import BaseNotificationSender, CeleryNotificationSender
from .registry import NotificationTemplate, NotificationTemplateRegistry
from .dispatcher import NotificationDispatcher, get_notification_dispatcher

__all__ = [
    "BaseNotificationSender",
    "CeleryNotificationSender",
    "NotificationTemplate",
    "NotificationTemplateRegistry",
    "NotificationDispatcher",
    "get_notification_dispatcher",
]
