from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.membership import MembershipPayment
from gym_lifecycle.schemas.enums import PaymentStatus

PENDING = PaymentStatus.PENDING.value


class CRUDPayment(CRUDBase[MembershipPayment]):
    """CRUD operations for membership payments."""

    async def get_for_membership(self, db: AsyncSession, *, membership_id: int) -> List[MembershipPayment]:
        """All payments of a membership, oldest first."""
        stmt = (
            select(MembershipPayment)
            .where(MembershipPayment.membership_id == membership_id)
            .order_by(MembershipPayment.created_at, MembershipPayment.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def get_latest_pending(self, db: AsyncSession, *, membership_id: int) -> Optional[MembershipPayment]:
        stmt = (
            select(MembershipPayment)
            .where(
                MembershipPayment.membership_id == membership_id,
                MembershipPayment.status == PENDING,
            )
            .order_by(MembershipPayment.created_at.desc(), MembershipPayment.id.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def reject_other_pending(
        self,
        db: AsyncSession,
        *,
        membership_id: int,
        keep_id: int,
        verified_by: Optional[str] = None,
        verified_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> int:
        return await self.update_where(
            db,
            MembershipPayment.membership_id == membership_id,
            MembershipPayment.status == PENDING,
            MembershipPayment.id != keep_id,
            values={
                "status": PaymentStatus.REJECTED.value,
                "verified_by": verified_by,
                "verified_at": verified_at,
            },
            commit=commit,
        )

    async def verify(
        self,
        db: AsyncSession,
        *,
        id: int,
        verified_by: Optional[str],
        verified_at: datetime,
        commit: bool = True,
    ) -> bool:
        updated = await self.update_where(
            db,
            MembershipPayment.id == id,
            MembershipPayment.status == PENDING,
            values={
                "status": PaymentStatus.VERIFIED.value,
                "verified_by": verified_by,
                "verified_at": verified_at,
            },
            commit=commit,
        )
        return updated == 1

    async def reject(
        self,
        db: AsyncSession,
        *,
        id: int,
        verified_by: Optional[str] = None,
        verified_at: Optional[datetime] = None,
        commit: bool = True,
    ) -> bool:
        updated = await self.update_where(
            db,
            MembershipPayment.id == id,
            MembershipPayment.status == PENDING,
            values={
                "status": PaymentStatus.REJECTED.value,
                "verified_by": verified_by,
                "verified_at": verified_at,
            },
            commit=commit,
        )
        return updated == 1


payment = CRUDPayment(MembershipPayment)
