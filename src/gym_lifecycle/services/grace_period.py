"""
Grace-period arithmetic shared by the lifecycle engine and the milestone notifier.

A membership whose end date has passed keeps its status for
``GRACE_PERIOD_DAYS`` before being terminated; a trainer period gets
``TRAINER_GRACE_PERIOD_DAYS`` before trainer access is revoked. Both windows
count down through a fixed set of milestone days.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from gym_lifecycle.core.config import settings

DAY = timedelta(days=1)


@dataclass(frozen=True)
class Milestone:
    days_remaining: int
    should_notify: bool = True


class GracePolicy:
    """Grace window of a fixed length with its notification milestones."""

    def __init__(self, grace_days: int, milestone_days: Tuple[int, ...]):
        self.grace_days = grace_days
        self.milestone_days = milestone_days

    def compute_grace_end(self, end_date: datetime) -> datetime:
        return end_date + timedelta(days=self.grace_days)

    def days_remaining(self, grace_end: Optional[datetime], now: datetime) -> Optional[int]:
        """Whole days left, rounded up. Negative once the window has passed."""
        if grace_end is None:
            return None
        return math.ceil((grace_end - now) / DAY)

    def milestones(self, grace_end: Optional[datetime], now: datetime) -> List[Milestone]:
        """The milestone that fires for ``now``, if any.

        ``now`` should be the business-day start so that a milestone fires on
        exactly one calendar day regardless of the hour the job runs.
        """
        remaining = self.days_remaining(grace_end, now)
        if not remaining or remaining <= 0:
            return []
        return [Milestone(days_remaining=d) for d in self.milestone_days if d == remaining]


membership_grace = GracePolicy(settings.GRACE_PERIOD_DAYS, (7, 2, 1))
trainer_grace = GracePolicy(settings.TRAINER_GRACE_PERIOD_DAYS, (3, 1))
