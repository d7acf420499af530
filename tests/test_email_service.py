from unittest.mock import AsyncMock

import pytest

from gym_lifecycle.crud.crud_email import email_event
from gym_lifecycle.models import EmailEvent, EmailFailure
from gym_lifecycle.services.email_service import EmailDeliveryError, EmailDispatcher, retry_delay

from .conftest import NOW, FakeDirectory, FakeTransport, fetch_all, no_sleep, permanent_error, transient_error


def dispatcher(db, clock, transport, **kwargs):
    kwargs.setdefault("directory", FakeDirectory())
    kwargs.setdefault("sleep", no_sleep)
    return EmailDispatcher(db, clock=clock, transport=transport, **kwargs)


def test_retry_delay_is_capped():
    assert [retry_delay(n) for n in range(1, 7)] == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


@pytest.mark.parametrize(
    "error, transient",
    [
        (EmailDeliveryError("rate limited", status_code=429), True),
        (EmailDeliveryError("bad gateway", status_code=502), True),
        (EmailDeliveryError("Request timeout: read timed out"), True),
        (EmailDeliveryError("Network error: connection reset"), True),
        (EmailDeliveryError("invalid from address", status_code=422), False),
        (EmailDeliveryError("unauthorized", status_code=401), False),
    ],
)
def test_transient_classification(error, transient):
    assert error.transient is transient


async def test_send_records_event_and_skips_repeat(db, clock, emails, transport):
    first = await emails.send_plan_expiry_reminder("user-1", 1, "Premium Quarterly", NOW)
    second = await emails.send_plan_expiry_reminder("user-1", 1, "Premium Quarterly", NOW)

    assert first.success and not first.skipped
    assert second.success and second.skipped
    assert len(transport.sent) == 1
    assert transport.sent[0] == ("user-1@example.com", "Your Premium Quarterly Membership Expires Soon - Renew Now")
    events = await fetch_all(db, EmailEvent)
    assert [(e.membership_id, e.event_type) for e in events] == [(1, "plan_expiry_reminder_5days")]


async def test_events_are_keyed_per_membership_and_template(db, clock, emails, transport):
    await emails.send_plan_expiry_day("user-1", 1, "Premium Quarterly", NOW)
    await emails.send_plan_expiry_day("user-1", 2, "Premium Quarterly", NOW)
    await emails.send_grace_period_start("user-1", 1, "Premium Quarterly", NOW)
    assert len(transport.sent) == 3


async def test_transient_failures_are_retried_with_backoff(db, clock):
    delays = []

    async def record_sleep(delay):
        delays.append(delay)

    transport = FakeTransport(failures=[transient_error(), transient_error()])
    result = await dispatcher(db, clock, transport, sleep=record_sleep).send_grace_period_end(
        "user-1", 1, "Premium Quarterly", NOW
    )

    assert result.success
    assert result.attempts == 3
    assert delays == [1.0, 2.0]
    assert await fetch_all(db, EmailFailure) == []


async def test_permanent_failure_is_not_retried(db, clock):
    transport = FakeTransport(failures=[permanent_error(), permanent_error()])
    result = await dispatcher(db, clock, transport).send_plan_expiry_day("user-1", 1, "Premium Quarterly", NOW)

    assert not result.success
    assert result.attempts == 1
    failures = await fetch_all(db, EmailFailure)
    assert len(failures) == 1
    assert failures[0].error_message == "Invalid recipient"
    assert failures[0].retry_count == 0
    assert failures[0].resolved_at is None
    assert await fetch_all(db, EmailEvent) == []


async def test_exhausted_retries_record_failure(db, clock):
    transport = FakeTransport(failures=[transient_error() for _ in range(3)])
    result = await dispatcher(db, clock, transport).send_plan_expiry_day("user-1", 1, "Premium Quarterly", NOW)

    assert not result.success
    assert result.attempts == 3
    failures = await fetch_all(db, EmailFailure)
    assert failures[0].retry_count == 2


async def test_later_success_resolves_failures(db, clock):
    transport = FakeTransport(failures=[permanent_error()])
    emails = dispatcher(db, clock, transport)

    failed = await emails.send_grace_period_start("user-1", 1, "Premium Quarterly", NOW)
    sent = await emails.send_grace_period_start("user-1", 1, "Premium Quarterly", NOW)

    assert not failed.success
    assert sent.success
    failures = await fetch_all(db, EmailFailure)
    assert len(failures) == 1
    assert failures[0].resolved_at == NOW


async def test_ledger_error_fails_open(db, clock, transport, monkeypatch):
    monkeypatch.setattr(email_event, "has_event", AsyncMock(side_effect=RuntimeError("ledger unavailable")))
    emails = dispatcher(db, clock, transport, fail_open=True)

    result = await emails.send_plan_expiry_reminder("user-1", 1, "Premium Quarterly", NOW)

    assert result.success
    assert len(transport.sent) == 1
    assert emails.fail_open_count == 1


async def test_ledger_error_fails_closed_when_configured(db, clock, transport, monkeypatch):
    monkeypatch.setattr(email_event, "has_event", AsyncMock(side_effect=RuntimeError("ledger unavailable")))
    emails = dispatcher(db, clock, transport, fail_open=False)

    result = await emails.send_plan_expiry_reminder("user-1", 1, "Premium Quarterly", NOW)

    assert not result.success
    assert "Idempotency check failed" in result.error
    assert transport.sent == []
    assert emails.fail_open_count == 1


async def test_missing_user_email(db, clock, transport):
    emails = dispatcher(db, clock, transport, directory=FakeDirectory(missing={"user-1"}))
    result = await emails.send_plan_expiry_day("user-1", 1, "Premium Quarterly", NOW)
    assert not result.success
    assert result.error == "User email not found"
    assert transport.sent == []


async def test_unconfigured_transport(db, clock):
    transport = FakeTransport(configured=False)
    result = await dispatcher(db, clock, transport).send_plan_expiry_day("user-1", 1, "Premium Quarterly", NOW)
    assert not result.success
    assert result.error == "Email service not configured"
