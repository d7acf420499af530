from datetime import datetime, timedelta, timezone

from gym_lifecycle.core.clock import BusinessClock, to_naive_utc

from .conftest import DAY_START, NOW


def test_now_is_naive_utc(clock):
    assert clock.now() == NOW
    assert clock.now().tzinfo is None


def test_business_day_start_uses_local_midnight(clock):
    assert clock.business_day_start() == DAY_START


def test_business_day_rolls_over_at_local_midnight(clock):
    # 20:00 UTC is already 01:30 the next day in IST
    late = datetime(2026, 3, 10, 20, 0)
    assert clock.business_day_start(late) == datetime(2026, 3, 10, 18, 30)
    just_before = datetime(2026, 3, 10, 18, 29)
    assert clock.business_day_start(just_before) == DAY_START


def test_business_day_bounds_ahead(clock):
    start, end = clock.business_day_bounds(days_ahead=5)
    assert start == DAY_START + timedelta(days=5)
    assert end - start == timedelta(days=1)


def test_to_local_applies_offset(clock):
    local = clock.to_local(NOW)
    assert local.utcoffset() == timedelta(hours=5, minutes=30)
    assert (local.hour, local.minute) == (12, 0)


def test_utc_business_timezone():
    utc_clock = BusinessClock(offset_minutes=0, now_fn=lambda: NOW.replace(tzinfo=timezone.utc))
    assert utc_clock.business_day_start() == datetime(2026, 3, 10)


def test_to_naive_utc_converts_aware_values():
    aware = datetime(2026, 3, 10, 12, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    assert to_naive_utc(aware) == NOW
