from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.membership import MembershipAddon
from gym_lifecycle.schemas.enums import AddonStatus, AddonType

PENDING = AddonStatus.PENDING.value
PERSONAL_TRAINER = AddonType.PERSONAL_TRAINER.value


class CRUDAddon(CRUDBase[MembershipAddon]):
    """CRUD operations for membership addons."""

    async def get_for_membership(self, db: AsyncSession, *, membership_id: int) -> List[MembershipAddon]:
        stmt = (
            select(MembershipAddon)
            .where(MembershipAddon.membership_id == membership_id)
            .order_by(MembershipAddon.created_at, MembershipAddon.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_trainer_addons_between(
        self, db: AsyncSession, *, membership_id: int, start: datetime, end: datetime
    ) -> List[MembershipAddon]:
        """Pending personal-trainer addons created inside ``[start, end]``, newest first."""
        stmt = (
            select(MembershipAddon)
            .where(
                MembershipAddon.membership_id == membership_id,
                MembershipAddon.addon_type == PERSONAL_TRAINER,
                MembershipAddon.status == PENDING,
                MembershipAddon.created_at >= start,
                MembershipAddon.created_at <= end,
            )
            .order_by(MembershipAddon.created_at.desc(), MembershipAddon.id.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_recent_pending_trainer_addons(
        self, db: AsyncSession, *, membership_id: int, limit: int = 10
    ) -> List[MembershipAddon]:
        """Pending personal-trainer addons of the membership regardless of age, newest first."""
        stmt = (
            select(MembershipAddon)
            .where(
                MembershipAddon.membership_id == membership_id,
                MembershipAddon.addon_type == PERSONAL_TRAINER,
                MembershipAddon.status == PENDING,
            )
            .order_by(MembershipAddon.created_at.desc(), MembershipAddon.id.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_trainer_addon_after(
        self, db: AsyncSession, *, membership_id: int, after: datetime
    ) -> Optional[MembershipAddon]:
        stmt = (
            select(MembershipAddon)
            .where(
                MembershipAddon.membership_id == membership_id,
                MembershipAddon.addon_type == PERSONAL_TRAINER,
                MembershipAddon.status == PENDING,
                MembershipAddon.created_at > after,
            )
            .order_by(MembershipAddon.created_at.desc(), MembershipAddon.id.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def activate(self, db: AsyncSession, *, id: int, commit: bool = True) -> bool:
        updated = await self.update_where(
            db,
            MembershipAddon.id == id,
            MembershipAddon.status == PENDING,
            values={"status": AddonStatus.ACTIVE.value},
            commit=commit,
        )
        return updated == 1

    async def delete_pending(self, db: AsyncSession, *, id: int, commit: bool = True) -> bool:
        deleted = await self.delete_where(
            db,
            MembershipAddon.id == id,
            MembershipAddon.status == PENDING,
            commit=commit,
        )
        return deleted == 1


addon = CRUDAddon(MembershipAddon)
