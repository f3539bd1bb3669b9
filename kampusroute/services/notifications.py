"""Store inbox notifications for ride events. Pushing them to devices is not done here."""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from kampusroute.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)


async def create_notification(
    db: AsyncSession,
    user_id: str,
    type: NotificationType,
    title: str,
    message: str,
    related_id: str | None = None,
    ref_model: str | None = "Post",
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        is_read=False,
        related_id=related_id,
        ref_model=ref_model,
    )
    db.add(notification)
    await db.flush()
    logger.debug("Notification %s for user %s: %s", type.value, user_id, title)
    return notification
