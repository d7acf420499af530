from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from gym_lifecycle.core.exceptions import ApprovalRejected
from gym_lifecycle.models import (
    AuditLog,
    Invoice,
    Membership,
    MembershipAddon,
    MembershipPayment,
    Notification,
    TrainerAssignment,
)
from gym_lifecycle.schemas.renewal import AdminIdentity
from gym_lifecycle.services.trainer_renewal import TrainerRenewalService, add_months, trainer_renewal_end_date

from .conftest import NOW, fetch_all

ADMIN = AdminIdentity(email="admin@gym.test", auth_user_id="admin-auth-1", name="Front Desk")


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (datetime(2026, 1, 31, 9, 0), 1, datetime(2026, 2, 28, 9, 0)),
        (datetime(2028, 1, 31), 1, datetime(2028, 2, 29)),
        (datetime(2026, 12, 15), 1, datetime(2027, 1, 15)),
        (datetime(2026, 3, 10), 3, datetime(2026, 6, 10)),
    ],
)
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


def test_renewal_end_is_capped_at_membership_end():
    membership_end = NOW + timedelta(days=14)
    start = membership_end - timedelta(weeks=3)
    assert trainer_renewal_end_date(start, 1, membership_end) == membership_end
    assert trainer_renewal_end_date(NOW, 1, NOW + timedelta(days=90)) == datetime(2026, 4, 10, 6, 30)


@pytest.fixture
def realtime():
    service = MagicMock()
    service.broadcast = AsyncMock(return_value=True)
    return service


@pytest.fixture
def service(db, clock, realtime):
    return TrainerRenewalService(db, clock=clock, realtime=realtime)


@pytest.fixture
def renewal(make_membership, make_trainer, make_payment, make_addon, make_assignment):
    """A member two weeks from plan end who paid for another month of trainer access."""

    async def factory(with_assignment=True, **membership_kwargs):
        trainer = await make_trainer()
        values = {
            "membership_end_date": NOW + timedelta(days=14),
            "trainer_assigned": True,
            "trainer_id": trainer.id,
            "trainer_period_end": NOW - timedelta(days=7),
            "trainer_grace_period_end": NOW - timedelta(days=2),
        }
        values.update(membership_kwargs)
        membership = await make_membership(**values)
        stale = await make_payment(membership.id, amount=3000, status="pending", created_at=NOW - timedelta(days=1))
        payment = await make_payment(membership.id, amount=3000, status="pending", created_at=NOW - timedelta(minutes=2))
        addon = await make_addon(membership.id, trainer_id=trainer.id, created_at=NOW - timedelta(minutes=1))
        assignment = None
        if with_assignment:
            assignment = await make_assignment(
                membership.id, trainer_id=trainer.id, created_at=NOW - timedelta(minutes=1)
            )
        return {
            "trainer": trainer,
            "membership": membership,
            "stale": stale,
            "payment": payment,
            "addon": addon,
            "assignment": assignment,
        }

    return factory


async def test_approval_extends_trainer_access_up_to_membership_end(db, service, realtime, renewal):
    setup = await renewal()
    membership = setup["membership"]

    result = await service.approve(membership.id, ADMIN)

    renewal_info = result.trainer_renewal
    assert result.success
    assert renewal_info.payment_id == setup["payment"].id
    assert renewal_info.addon_id == setup["addon"].id
    assert renewal_info.assignment_id == setup["assignment"].id
    assert renewal_info.trainer_name == "Ravi"
    assert renewal_info.renewal_start_date == NOW - timedelta(days=7)
    assert renewal_info.renewal_end_date == NOW + timedelta(days=14)

    row = (await fetch_all(db, Membership, Membership.id == membership.id))[0]
    assert row.trainer_period_end == NOW + timedelta(days=14)
    assert row.trainer_grace_period_end is None
    assert row.trainer_assigned and row.trainer_addon

    payments = {p.id: p for p in await fetch_all(db, MembershipPayment)}
    assert payments[setup["payment"].id].status == "verified"
    assert payments[setup["payment"].id].verified_by == "admin-auth-1"
    assert payments[setup["stale"].id].status == "rejected"

    assert (await fetch_all(db, MembershipAddon))[0].status == "active"
    assignment = (await fetch_all(db, TrainerAssignment))[0]
    assert assignment.status == "assigned"
    assert assignment.period_end == NOW + timedelta(days=14)

    invoices = await fetch_all(db, Invoice)
    assert [(i.payment_id, i.invoice_type, i.amount) for i in invoices] == [
        (setup["payment"].id, "trainer_renewal", 3000)
    ]
    audits = await fetch_all(db, AuditLog)
    assert [a.action for a in audits] == ["trainer_renewal_approved"]
    assert audits[0].admin_email == "admin@gym.test"
    notifications = await fetch_all(db, Notification)
    assert [n.type for n in notifications] == ["trainer_renewal_approved"]
    assert notifications[0].actor_role == "admin"
    realtime.broadcast.assert_awaited_once()
    assert realtime.broadcast.await_args.args[0] == "user_user-1_notifications"


async def test_approval_starts_from_now_without_previous_period(db, service, renewal):
    setup = await renewal(
        membership_end_date=NOW + timedelta(days=90), trainer_period_end=None, trainer_grace_period_end=None
    )

    result = await service.approve(setup["membership"].id, ADMIN)

    assert result.trainer_renewal.renewal_start_date == NOW
    assert result.trainer_renewal.renewal_end_date == datetime(2026, 4, 10, 6, 30)


async def test_approval_creates_missing_assignment(db, service, renewal):
    setup = await renewal(with_assignment=False)

    result = await service.approve(setup["membership"].id, ADMIN)

    assignments = await fetch_all(db, TrainerAssignment)
    assert len(assignments) == 1
    assert result.trainer_renewal.assignment_id == assignments[0].id
    assert assignments[0].status == "assigned"
    assert assignments[0].trainer_id == setup["trainer"].id


async def test_approval_widens_to_recent_addons(db, service, renewal, make_addon):
    setup = await renewal()
    await db.delete(setup["addon"])
    await db.commit()
    older = await make_addon(setup["membership"].id, trainer_id=setup["trainer"].id, created_at=NOW - timedelta(hours=3))

    result = await service.approve(setup["membership"].id, ADMIN)

    assert result.trainer_renewal.addon_id == older.id


async def test_amount_mismatch_is_rejected(db, service, renewal, make_payment):
    setup = await renewal()
    short = await make_payment(setup["membership"].id, amount=2500, status="pending", created_at=NOW)

    with pytest.raises(ApprovalRejected) as exc:
        await service.approve(setup["membership"].id, ADMIN)

    assert exc.value.status_code == 400
    assert exc.value.to_content()["paymentAmount"] == 2500
    assert exc.value.to_content()["expectedAmount"] == 3000
    payment = (await fetch_all(db, MembershipPayment, MembershipPayment.id == short.id))[0]
    assert payment.status == "pending"
    assert (await fetch_all(db, MembershipAddon))[0].status == "pending"


async def test_missing_addon_reports_debug_data(db, service, make_membership, make_payment):
    membership = await make_membership()
    payment = await make_payment(membership.id, amount=3000, status="pending")

    with pytest.raises(ApprovalRejected) as exc:
        await service.approve(membership.id, ADMIN)

    assert exc.value.status_code == 404
    content = exc.value.to_content()
    assert content["error"] == "No pending trainer addon found for this payment"
    assert content["debug"]["paymentId"] == payment.id
    assert content["debug"]["foundAddonsCount"] == 0


async def test_inactive_membership_is_rejected(db, service, renewal):
    setup = await renewal(status="grace_period")

    with pytest.raises(ApprovalRejected) as exc:
        await service.approve(setup["membership"].id, ADMIN)

    assert exc.value.status_code == 400
    assert "'grace_period'" in exc.value.error


async def test_unknown_membership_and_missing_payment(db, service, make_membership):
    with pytest.raises(ApprovalRejected) as missing:
        await service.approve(404, ADMIN)
    assert missing.value.status_code == 404

    membership = await make_membership()
    with pytest.raises(ApprovalRejected) as unpaid:
        await service.approve(membership.id, ADMIN)
    assert unpaid.value.error == "No pending payment found for trainer renewal"


async def test_rejection_removes_pending_purchase(db, service, make_membership, make_payment, make_addon, make_assignment):
    membership = await make_membership()
    payment = await make_payment(membership.id, amount=3000, status="pending", created_at=NOW)
    addon = await make_addon(membership.id, created_at=NOW + timedelta(seconds=1))
    assignment = await make_assignment(membership.id, created_at=NOW + timedelta(seconds=1))

    result = await service.reject(membership.id, ADMIN, reason="Screenshot unreadable")

    assert result.payment_id == payment.id
    assert result.removed_addon_id == addon.id
    assert result.removed_assignment_id == assignment.id
    assert (await fetch_all(db, MembershipPayment))[0].status == "rejected"
    assert await fetch_all(db, MembershipAddon) == []
    assert await fetch_all(db, TrainerAssignment) == []
    notifications = await fetch_all(db, Notification)
    assert notifications[0].type == "trainer_renewal_rejected"
    assert "Reason: Screenshot unreadable" in notifications[0].content
    audits = await fetch_all(db, AuditLog)
    assert audits[0].action == "trainer_renewal_rejected"
