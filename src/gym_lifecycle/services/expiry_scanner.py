"""
Candidate selection for the expiry job.

Each category is an independent read. A failing query is logged and yields an
empty list so the remaining categories still run; a membership may show up in
more than one category and is handled by each.
"""
import logging
from datetime import timedelta
from typing import Awaitable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.core.config import settings
from gym_lifecycle.crud.crud_membership import membership
from gym_lifecycle.models.membership import Membership
from gym_lifecycle.schemas.membership import MembershipRecord

logger = logging.getLogger(__name__)


class ExpiryScanner:
    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[BusinessClock] = None,
        grace_period_days: Optional[int] = None,
        reminder_days: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock or BusinessClock()
        self.grace_period_days = grace_period_days or settings.GRACE_PERIOD_DAYS
        self.reminder_days = reminder_days or settings.EXPIRY_REMINDER_DAYS

    async def _collect(self, category: str, query: Awaitable[List[Membership]]) -> List[MembershipRecord]:
        try:
            rows = await query
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Expiry scan '{category}' failed: {str(e)}")
            return []
        records = [MembershipRecord.from_model(row) for row in rows]
        logger.info(f"Expiry scan '{category}': {len(records)} candidates")
        return records

    async def expiring_memberships(self, window_days: int) -> List[MembershipRecord]:
        """Active memberships ending within the notification window."""
        now = self.clock.now()
        return await self._collect(
            "expiring_memberships",
            membership.get_expiring_between(self.db, after=now, until=now + timedelta(days=window_days)),
        )

    async def reminder_memberships(self, days: Optional[int] = None) -> List[MembershipRecord]:
        """Active memberships ending on the business day ``days`` from today."""
        start, end = self.clock.business_day_bounds(days_ahead=self.reminder_days if days is None else days)
        return await self._collect("reminder_memberships", membership.get_ending_within(self.db, start=start, end=end))

    async def expiring_trainer_periods(self, window_days: int) -> List[MembershipRecord]:
        now = self.clock.now()
        return await self._collect(
            "expiring_trainer_periods",
            membership.get_trainer_periods_expiring_between(
                self.db, after=now, until=now + timedelta(days=window_days)
            ),
        )

    async def grace_eligible_memberships(self) -> List[MembershipRecord]:
        """Active memberships whose end date is yesterday or earlier and that have no grace window yet."""
        return await self._collect(
            "grace_eligible_memberships",
            membership.get_grace_eligible(self.db, day_start=self.clock.business_day_start()),
        )

    async def expiring_today_memberships(self) -> List[MembershipRecord]:
        start, end = self.clock.business_day_bounds()
        return await self._collect(
            "expiring_today_memberships", membership.get_ending_within(self.db, start=start, end=end)
        )

    async def grace_milestone_memberships(self) -> List[MembershipRecord]:
        return await self._collect(
            "grace_milestone_memberships", membership.get_in_grace_until_after(self.db, now=self.clock.now())
        )

    async def grace_ending_today_memberships(self) -> List[MembershipRecord]:
        start, end = self.clock.business_day_bounds()
        return await self._collect(
            "grace_ending_today_memberships", membership.get_grace_ending_within(self.db, start=start, end=end)
        )

    async def grace_expired_memberships(self) -> List[MembershipRecord]:
        return await self._collect(
            "grace_expired_memberships", membership.get_grace_expired(self.db, now=self.clock.now())
        )

    async def trainer_grace_eligible(self) -> List[MembershipRecord]:
        return await self._collect(
            "trainer_grace_eligible", membership.get_trainer_grace_eligible(self.db, now=self.clock.now())
        )

    async def trainer_grace_milestone_candidates(self) -> List[MembershipRecord]:
        return await self._collect(
            "trainer_grace_milestone_candidates",
            membership.get_trainer_grace_running(self.db, now=self.clock.now()),
        )

    async def trainer_grace_expired(self) -> List[MembershipRecord]:
        return await self._collect(
            "trainer_grace_expired", membership.get_trainer_grace_expired(self.db, now=self.clock.now())
        )

    async def legacy_expired_memberships(self) -> List[MembershipRecord]:
        """Active memberships that ended more than a full grace period ago without ever entering grace."""
        cutoff = self.clock.now() - timedelta(days=self.grace_period_days)
        return await self._collect("legacy_expired_memberships", membership.get_legacy_expired(self.db, cutoff=cutoff))
