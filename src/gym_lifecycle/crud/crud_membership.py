from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.membership import Membership, Trainer
from gym_lifecycle.schemas.enums import MembershipStatus

ACTIVE = MembershipStatus.ACTIVE.value
GRACE_PERIOD = MembershipStatus.GRACE_PERIOD.value


class CRUDMembership(CRUDBase[Membership]):
    """Membership reads used by the expiry scan and the guarded lifecycle writes."""

    async def _select(self, db: AsyncSession, *conditions) -> List[Membership]:
        stmt = select(Membership).where(*conditions).order_by(Membership.id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # Reads

    async def get_expiring_between(
        self, db: AsyncSession, *, after: datetime, until: datetime
    ) -> List[Membership]:
        """Active memberships whose end date is in ``(after, until]``."""
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.resolved_end_date > after,
            Membership.resolved_end_date <= until,
        )

    async def get_ending_within(
        self, db: AsyncSession, *, start: datetime, end: datetime
    ) -> List[Membership]:
        """Active memberships whose end date falls in the day window ``[start, end)``."""
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.resolved_end_date >= start,
            Membership.resolved_end_date < end,
        )

    async def get_trainer_periods_expiring_between(
        self, db: AsyncSession, *, after: datetime, until: datetime
    ) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.trainer_assigned.is_(True),
            Membership.trainer_period_end > after,
            Membership.trainer_period_end <= until,
        )

    async def get_grace_eligible(self, db: AsyncSession, *, day_start: datetime) -> List[Membership]:
        """Active memberships that ended before today and never entered grace."""
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.grace_period_end.is_(None),
            Membership.resolved_end_date < day_start,
        )

    async def get_legacy_expired(self, db: AsyncSession, *, cutoff: datetime) -> List[Membership]:
        """Active memberships whose grace window would already be over had it been applied."""
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.grace_period_end.is_(None),
            Membership.resolved_end_date < cutoff,
        )

    async def get_in_grace_until_after(self, db: AsyncSession, *, now: datetime) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == GRACE_PERIOD,
            Membership.grace_period_end > now,
        )

    async def get_grace_ending_within(
        self, db: AsyncSession, *, start: datetime, end: datetime
    ) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == GRACE_PERIOD,
            Membership.grace_period_end >= start,
            Membership.grace_period_end < end,
        )

    async def get_grace_expired(self, db: AsyncSession, *, now: datetime) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == GRACE_PERIOD,
            Membership.grace_period_end <= now,
        )

    async def get_trainer_grace_eligible(self, db: AsyncSession, *, now: datetime) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.trainer_assigned.is_(True),
            Membership.trainer_period_end <= now,
            Membership.trainer_grace_period_end.is_(None),
        )

    async def get_trainer_grace_running(self, db: AsyncSession, *, now: datetime) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.trainer_assigned.is_(True),
            Membership.trainer_grace_period_end > now,
        )

    async def get_trainer_grace_expired(self, db: AsyncSession, *, now: datetime) -> List[Membership]:
        return await self._select(
            db,
            Membership.status == ACTIVE,
            Membership.trainer_assigned.is_(True),
            Membership.trainer_grace_period_end <= now,
        )

    # Guarded writes. Each returns True only when this call moved the row.

    async def mark_grace_period(
        self,
        db: AsyncSession,
        *,
        id: int,
        grace_period_end: datetime,
        clear_trainer: bool = False,
        commit: bool = True,
    ) -> bool:
        values = {"status": GRACE_PERIOD, "grace_period_end": grace_period_end}
        if clear_trainer:
            values.update(
                trainer_assigned=False,
                trainer_id=None,
                trainer_period_end=None,
                trainer_grace_period_end=None,
            )
        updated = await self.update_where(
            db,
            Membership.id == id,
            Membership.status == ACTIVE,
            Membership.grace_period_end.is_(None),
            values=values,
            commit=commit,
        )
        return updated == 1

    async def delete_after_grace(self, db: AsyncSession, *, id: int, now: datetime) -> bool:
        deleted = await self.delete_where(
            db,
            Membership.id == id,
            Membership.status == GRACE_PERIOD,
            Membership.grace_period_end <= now,
        )
        return deleted == 1

    async def mark_legacy_expired(self, db: AsyncSession, *, id: int) -> bool:
        updated = await self.update_where(
            db,
            Membership.id == id,
            Membership.status == ACTIVE,
            Membership.grace_period_end.is_(None),
            values={"status": MembershipStatus.EXPIRED.value},
        )
        return updated == 1

    async def start_trainer_grace(
        self, db: AsyncSession, *, id: int, trainer_grace_period_end: datetime
    ) -> bool:
        updated = await self.update_where(
            db,
            Membership.id == id,
            Membership.status == ACTIVE,
            Membership.trainer_assigned.is_(True),
            Membership.trainer_grace_period_end.is_(None),
            values={"trainer_grace_period_end": trainer_grace_period_end},
        )
        return updated == 1

    async def revoke_trainer(
        self, db: AsyncSession, *, id: int, now: datetime, commit: bool = True
    ) -> bool:
        updated = await self.update_where(
            db,
            Membership.id == id,
            Membership.trainer_assigned.is_(True),
            Membership.trainer_grace_period_end <= now,
            values={
                "trainer_assigned": False,
                "trainer_id": None,
                "trainer_period_end": None,
                "trainer_grace_period_end": None,
            },
            commit=commit,
        )
        return updated == 1

    async def extend_trainer_period(
        self,
        db: AsyncSession,
        *,
        id: int,
        trainer_id: int | None,
        trainer_period_end: datetime,
        commit: bool = True,
    ) -> bool:
        """Apply an approved trainer renewal and clear any trainer grace window."""
        updated = await self.update_where(
            db,
            Membership.id == id,
            Membership.status == ACTIVE,
            values={
                "trainer_assigned": True,
                "trainer_id": trainer_id,
                "trainer_period_end": trainer_period_end,
                "trainer_addon": True,
                "trainer_grace_period_end": None,
            },
            commit=commit,
        )
        return updated == 1


membership = CRUDMembership(Membership)
trainer = CRUDBase(Trainer)
