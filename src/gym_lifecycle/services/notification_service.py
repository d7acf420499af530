import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.crud_notification import notification
from gym_lifecycle.schemas.notification import NotificationCreate

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notifications for members, trainers and admins."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_bulk(self, rows: List[NotificationCreate]) -> int:
        """Insert notifications; a failure is logged and reported as zero rows created."""
        if not rows:
            return 0
        try:
            return await notification.create_bulk(self.db, rows=rows)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to create {len(rows)} notifications: {str(e)}")
            return 0

    async def notify_once(self, rows: List[NotificationCreate]) -> int:
        """Like ``create_bulk`` but skips rows whose ``reference_key`` was already used."""
        try:
            seen = await notification.existing_reference_keys(
                self.db, keys=[row.reference_key for row in rows if row.reference_key]
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Notification dedupe lookup failed: {str(e)}")
            return 0
        fresh = [row for row in rows if not row.reference_key or row.reference_key not in seen]
        if len(fresh) < len(rows):
            logger.debug(f"Skipping {len(rows) - len(fresh)} notifications already emitted")
        return await self.create_bulk(fresh)
