from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.core import EmailEvent, EmailFailure


class CRUDEmailEvent(CRUDBase[EmailEvent]):
    """Idempotency ledger of sent lifecycle emails."""

    async def has_event(
        self, db: AsyncSession, *, user_id: str, membership_id: Optional[int], event_type: str
    ) -> bool:
        stmt = (
            select(EmailEvent.id)
            .where(
                EmailEvent.user_id == user_id,
                EmailEvent.membership_id == membership_id,
                EmailEvent.event_type == event_type,
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def record(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        membership_id: Optional[int],
        event_type: str,
        email_address: Optional[str],
        sent_at: datetime,
    ) -> EmailEvent:
        return await self.create(
            db,
            obj_in={
                "user_id": user_id,
                "membership_id": membership_id,
                "event_type": event_type,
                "email_address": email_address,
                "sent_at": sent_at,
            },
        )


class CRUDEmailFailure(CRUDBase[EmailFailure]):
    """Diagnostic ledger of failed sends."""

    async def record(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        membership_id: Optional[int],
        event_type: str,
        email_address: Optional[str],
        error_message: str,
        retry_count: int,
        attempted_at: datetime,
    ) -> EmailFailure:
        return await self.create(
            db,
            obj_in={
                "user_id": user_id,
                "membership_id": membership_id,
                "event_type": event_type,
                "email_address": email_address,
                "error_message": error_message,
                "retry_count": retry_count,
                "last_attempt_at": attempted_at,
            },
        )

    async def resolve(
        self,
        db: AsyncSession,
        *,
        user_id: str,
        membership_id: Optional[int],
        event_type: str,
        resolved_at: datetime,
    ) -> int:
        """Stamp every open failure for the key as resolved."""
        return await self.update_where(
            db,
            EmailFailure.user_id == user_id,
            EmailFailure.membership_id == membership_id,
            EmailFailure.event_type == event_type,
            EmailFailure.resolved_at.is_(None),
            values={"resolved_at": resolved_at},
        )


email_event = CRUDEmailEvent(EmailEvent)
email_failure = CRUDEmailFailure(EmailFailure)
