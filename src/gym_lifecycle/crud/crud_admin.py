from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.core import Admin


class CRUDAdmin(CRUDBase[Admin]):
    async def get_active_by_email(self, db: AsyncSession, *, email: str) -> Optional[Admin]:
        """Get an active admin by email, case-insensitively."""
        stmt = select(Admin).where(
            func.lower(Admin.email) == email.lower(),
            Admin.is_active.is_(True),
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()


admin = CRUDAdmin(Admin)
