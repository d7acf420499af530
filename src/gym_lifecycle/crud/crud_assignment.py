from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.membership import Trainer, TrainerAssignment
from gym_lifecycle.schemas.enums import AssignmentStatus, AssignmentType

PENDING = AssignmentStatus.PENDING.value
ADDON = AssignmentType.ADDON.value


class CRUDAssignment(CRUDBase[TrainerAssignment]):
    """CRUD operations for trainer assignments."""

    async def get_for_membership_with_price(
        self, db: AsyncSession, *, membership_id: int
    ) -> List[Tuple[TrainerAssignment, Optional[float]]]:
        """Assignments of a membership paired with the assigned trainer's current price."""
        stmt = (
            select(TrainerAssignment, Trainer.price)
            .outerjoin(Trainer, Trainer.id == TrainerAssignment.trainer_id)
            .where(TrainerAssignment.membership_id == membership_id)
            .order_by(TrainerAssignment.created_at, TrainerAssignment.id)
        )
        result = await db.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def get_pending_addon_between(
        self, db: AsyncSession, *, membership_id: int, start: datetime, end: datetime
    ) -> List[TrainerAssignment]:
        stmt = (
            select(TrainerAssignment)
            .where(
                TrainerAssignment.membership_id == membership_id,
                TrainerAssignment.assignment_type == ADDON,
                TrainerAssignment.status == PENDING,
                TrainerAssignment.created_at >= start,
                TrainerAssignment.created_at <= end,
            )
            .order_by(TrainerAssignment.created_at.desc(), TrainerAssignment.id.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_recent_pending_addon(
        self, db: AsyncSession, *, membership_id: int, limit: int = 10
    ) -> List[TrainerAssignment]:
        stmt = (
            select(TrainerAssignment)
            .where(
                TrainerAssignment.membership_id == membership_id,
                TrainerAssignment.assignment_type == ADDON,
                TrainerAssignment.status == PENDING,
            )
            .order_by(TrainerAssignment.created_at.desc(), TrainerAssignment.id.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_addon_after(
        self, db: AsyncSession, *, membership_id: int, after: datetime
    ) -> Optional[TrainerAssignment]:
        stmt = (
            select(TrainerAssignment)
            .where(
                TrainerAssignment.membership_id == membership_id,
                TrainerAssignment.assignment_type == ADDON,
                TrainerAssignment.status == PENDING,
                TrainerAssignment.created_at > after,
            )
            .order_by(TrainerAssignment.created_at.desc(), TrainerAssignment.id.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def expire_assigned(self, db: AsyncSession, *, membership_id: int, commit: bool = True) -> int:
        """Flip every ``assigned`` assignment of the membership to ``expired``."""
        return await self.update_where(
            db,
            TrainerAssignment.membership_id == membership_id,
            TrainerAssignment.status == AssignmentStatus.ASSIGNED.value,
            values={"status": AssignmentStatus.EXPIRED.value},
            commit=commit,
        )

    async def mark_assigned(
        self,
        db: AsyncSession,
        *,
        id: int,
        trainer_id: Optional[int],
        period_start: datetime,
        period_end: datetime,
        commit: bool = True,
    ) -> bool:
        updated = await self.update_where(
            db,
            TrainerAssignment.id == id,
            TrainerAssignment.status == PENDING,
            values={
                "status": AssignmentStatus.ASSIGNED.value,
                "trainer_id": trainer_id,
                "period_start": period_start,
                "period_end": period_end,
            },
            commit=commit,
        )
        return updated == 1

    async def delete_pending(self, db: AsyncSession, *, id: int, commit: bool = True) -> bool:
        deleted = await self.delete_where(
            db,
            TrainerAssignment.id == id,
            TrainerAssignment.status == PENDING,
            commit=commit,
        )
        return deleted == 1


assignment = CRUDAssignment(TrainerAssignment)
