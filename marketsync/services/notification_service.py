"""User-facing alerts raised by sync and export flows."""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.models.user import UserNotification

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Fire-and-forget notification channel.

    Alerts are stored as UserNotification rows in the caller's transaction.
    A failure to record one is logged and never propagated to the caller.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def notify(self, user_id: int, title: str, message: Optional[str] = None, level: str = "info") -> bool:
        try:
            self.db.add(UserNotification(user_id=user_id, title=title, message=message, level=level))
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store notification for user {user_id}: {e}")
            return False

        logger.info(f"Notified user {user_id}: {title}")
        return True

    async def alert_error(self, user_id: int, title: str, message: str) -> bool:
        return await self.notify(user_id, title, message, level="danger")
