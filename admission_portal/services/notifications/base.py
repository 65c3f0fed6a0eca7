from abc import ABC, abstractmethod

from admission_portal.schemas.application_schemas import NotificationMessage
from admission_portal.utils.context import get_request_id


class BaseNotificationSender(ABC):
    """Hands a finished notification to whatever delivers it."""

    @abstractmethod
    def send(self, message: NotificationMessage) -> None:
        pass


class CeleryNotificationSender(BaseNotificationSender):
    """Queues each notification on the Celery broker."""

    def send(self, message: NotificationMessage) -> None:
        from admission_portal.tasks import send_notification_task

        send_notification_task.delay(  # type: ignore
            request_id=get_request_id(),
            message=message.model_dump(mode="json"),
        )
