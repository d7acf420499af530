import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.config import settings
from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.core import AdminSetting

logger = logging.getLogger(__name__)

EXPIRY_NOTIFICATION_DAYS_KEY = "expiry_notification_days"


class CRUDAdminSetting(CRUDBase[AdminSetting]):
    """Key/value admin settings."""

    async def get_value(self, db: AsyncSession, *, key: str) -> Optional[str]:
        stmt = select(AdminSetting.setting_value).where(AdminSetting.setting_key == key)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def expiry_notification_days(self, db: AsyncSession, *, default: Optional[int] = None) -> int:
        """Pre-expiry notification window in days.

        Falls back to ``EXPIRY_NOTIFICATION_DAYS`` when the setting is absent,
        unparseable or the lookup itself fails.
        """
        if default is None:
            default = settings.EXPIRY_NOTIFICATION_DAYS
        try:
            raw = await self.get_value(db, key=EXPIRY_NOTIFICATION_DAYS_KEY)
        except Exception as e:
            logger.error(f"Failed to read {EXPIRY_NOTIFICATION_DAYS_KEY}: {str(e)}")
            await db.rollback()
            return default
        if raw is None:
            return default
        try:
            days = int(str(raw).strip())
        except ValueError:
            logger.warning(f"Ignoring unparseable {EXPIRY_NOTIFICATION_DAYS_KEY}={raw!r}")
            return default
        return days if days > 0 else default


admin_setting = CRUDAdminSetting(AdminSetting)
