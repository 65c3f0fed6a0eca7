import asyncio
import contextvars
import functools
from typing import Any, Dict, List, Optional, Set

from admission_portal.config.settings import settings
from admission_portal.schemas.application_schemas import (
    Actor,
    Application,
    NotificationMessage,
)
from admission_portal.services.notifications.base import (
    BaseNotificationSender,
    CeleryNotificationSender,
)
from admission_portal.services.notifications.registry import (
    NotificationTemplateRegistry,
)
from admission_portal.utils.logging import get_logger

logger = get_logger()


class NotificationDispatcher:
    """
    Fans a workflow event out to everyone following the application.

    Delivery runs in the background; a failing sender is logged and never
    reaches the caller.
    """

    def __init__(self, sender: BaseNotificationSender, enabled: bool = True):
        self.sender = sender
        self.enabled = enabled
        self._pending: Set[asyncio.Task] = set()

    def build_messages(
        self,
        notification_code: str,
        application: Application,
        actor: Actor,
        extra: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationMessage]:
        last_entry = application.workflow_history[-1] if application.workflow_history else None
        counts = application.review_status.document_counts
        data = {
            "application_id": application.application_id,
            "status": application.status.value,
            "stage": application.current_stage.value,
            "remarks": (last_entry.remarks if last_entry else None) or "",
            "approved": counts.approved,
            "rejected": counts.rejected,
            "pending": counts.pending,
            "total": counts.total,
        }
        data.update(extra or {})

        rendered = NotificationTemplateRegistry.render(notification_code, data)
        if rendered is None:
            return []

        return [
            NotificationMessage(
                notification_code=notification_code,
                application_id=application.application_id,
                recipient_id=recipient_id,
                recipient_role=recipient_role,
                actor_id=actor.actor_id,
                actor_role=actor.actor_role,
                subject=rendered.subject,
                body=rendered.body,
                status=application.status,
                metadata={"stage": application.current_stage.value},
            )
            for recipient_id, recipient_role in application.stakeholders()
        ]

    def dispatch(
        self,
        notification_code: str,
        application: Application,
        actor: Actor,
        extra: Optional[Dict[str, Any]] = None,
    ) -> List[NotificationMessage]:
        """Build the messages and schedule their delivery without waiting for it."""
        if not self.enabled:
            return []
        try:
            messages = self.build_messages(notification_code, application, actor, extra)
        except Exception as e:
            logger.error(
                f"Failed to build {notification_code} notifications for "
                f"{application.application_id}: {str(e)}"
            )
            return []
        if not messages:
            return []

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            for message in messages:
                self._send_quietly(message)
        else:
            task = loop.create_task(self._deliver(messages))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return messages

    async def drain(self) -> None:
        """Wait for scheduled deliveries, e.g. on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, messages: List[NotificationMessage]) -> None:
        loop = asyncio.get_running_loop()
        # executor threads do not inherit the request context
        context = contextvars.copy_context()
        for message in messages:
            await loop.run_in_executor(
                None, functools.partial(context.run, self._send_quietly, message)
            )

    def _send_quietly(self, message: NotificationMessage) -> None:
        try:
            self.sender.send(message)
        except Exception as e:
            logger.error(
                f"Notification {message.notification_code} to {message.recipient_id} "
                f"failed: {str(e)}"
            )


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Dependency to get the shared notification dispatcher"""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(
            CeleryNotificationSender(), enabled=settings.NOTIFICATIONS_ENABLED
        )
    return _dispatcher
