"""
Business-day clock.

The gym operates on Indian Standard Time while the batch job may run on a host
in any timezone. Every day-boundary comparison goes through this clock so that
"today", "yesterday" and milestone days mean the same thing no matter when or
where the job executes. Instants handed to the database are naive UTC.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from gym_lifecycle.core.config import settings


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive-UTC datetime to naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class BusinessClock:
    """Wall clock with a configurable business timezone."""

    def __init__(
        self,
        offset_minutes: Optional[int] = None,
        now_fn: Optional[Callable[[], datetime]] = None,
    ):
        if offset_minutes is None:
            offset_minutes = settings.BUSINESS_UTC_OFFSET_MINUTES
        self.tz = timezone(timedelta(minutes=offset_minutes))
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        """Current instant as naive UTC."""
        return to_naive_utc(self._now_fn())

    def to_local(self, instant: datetime) -> datetime:
        """Aware local-time view of a naive-UTC or aware instant."""
        return to_naive_utc(instant).replace(tzinfo=timezone.utc).astimezone(self.tz)

    def business_day_start(self, instant: Optional[datetime] = None) -> datetime:
        """Naive UTC instant of local midnight for the day containing ``instant``."""
        instant = self.now() if instant is None else to_naive_utc(instant)
        local = instant.replace(tzinfo=timezone.utc).astimezone(self.tz)
        local_midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        return to_naive_utc(local_midnight)

    def business_day_bounds(
        self, instant: Optional[datetime] = None, days_ahead: int = 0
    ) -> Tuple[datetime, datetime]:
        """Half-open ``[start, end)`` UTC window of a local calendar day."""
        start = self.business_day_start(instant) + timedelta(days=days_ahead)
        return start, start + timedelta(days=1)
