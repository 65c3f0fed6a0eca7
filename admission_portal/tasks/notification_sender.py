import asyncio
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from admission_portal.celery import celery
from admission_portal.config.settings import settings
from admission_portal.db.models import NotificationRecord
from admission_portal.schemas.application_schemas import NotificationMessage
from admission_portal.utils.logging import get_logger


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def send_notification_task(self, request_id: str, message: Dict[str, Any]):
    """
    Celery task that records an application notification for its recipient.

    The stored row is the in-app copy; downstream channels pick pending rows up.

    Args:
        request_id: The request ID from the original HTTP request
        message: A serialized NotificationMessage
    """
    try:
        return asyncio.run(_async_store_notification(request_id, message))
    except SQLAlchemyError as e:
        raise self.retry(exc=e)


async def _async_store_notification(
    request_id: str, message: Dict[str, Any]
) -> Dict[str, Any]:
    logger = get_logger().bind(request_id=request_id)
    notification = NotificationMessage.model_validate(message)

    # each asyncio.run has its own loop, so pooled connections cannot be shared
    engine = create_async_engine(str(settings.DATABASE_URL), poolclass=NullPool)
    try:
        async with async_sessionmaker(bind=engine)() as db_session:
            async with db_session.begin():
                record = NotificationRecord(
                    notification_code=notification.notification_code,
                    application_id=notification.application_id,
                    recipient_id=notification.recipient_id,
                    recipient_role=notification.recipient_role,
                    actor_id=notification.actor_id,
                    subject=notification.subject,
                    body=notification.body,
                    notification_metadata={
                        **notification.metadata,
                        "status": notification.status.value,
                    },
                )
                db_session.add(record)
                await db_session.flush()
                notification_id = record.id
    finally:
        await engine.dispose()

    logger.info(
        f"Stored notification {notification.notification_code} "
        f"for {notification.recipient_id} ({notification_id})"
    )
    return {
        "success": True,
        "notification_id": notification_id,
        "request_id": request_id,
    }
