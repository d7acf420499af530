from datetime import timedelta

import pytest

from gym_lifecycle.schemas.enums import Confidence, PaymentPurpose, PlanCategory
from gym_lifecycle.schemas.membership import MembershipRecord
from gym_lifecycle.schemas.reconciliation import AddonSnapshot, AssignmentSnapshot, PaymentSnapshot
from gym_lifecycle.services.payment_reconciler import PaymentReconciler, renewal_price

from .conftest import NOW

FIRST_PAID = NOW - timedelta(days=90)


def membership(**kwargs):
    values = {
        "id": 1,
        "user_id": "user-1",
        "plan_name": "Premium Quarterly",
        "plan_type": "in_gym",
        "price": 650,
        "status": "active",
        "end_date": NOW + timedelta(days=30),
    }
    values.update(kwargs)
    values["plan_category"] = PlanCategory.from_plan_name(values["plan_name"])
    return MembershipRecord(**values)


def payment(id, amount, created_at=NOW, status="verified"):
    return PaymentSnapshot(id=id, amount=amount, status=status, created_at=created_at)


def trainer_addon(created_at=NOW, price=3000, status="active", id=10):
    return AddonSnapshot(id=id, addon_type="personal_trainer", status=status, price=price, created_at=created_at)


def classify(target, record, addons=(), assignments=()):
    first = payment(1, 650, created_at=FIRST_PAID)
    return PaymentReconciler().classify(target, record, [first, target], list(addons), list(assignments))


@pytest.mark.parametrize(
    "plan_name, plan_type, price, expected",
    [
        ("Regular Monthly", "in_gym", 1200, 648),
        ("Regular Monthly", "in_gym", 1400, 756),
        ("Regular Boys", "in_gym", 1200, 648),
        ("Regular Monthly", "in_gym", 800, 800),
        ("Regular Monthly", "online", 1200, 1200),
        ("Premium Quarterly", "in_gym", 3000, 3000),
    ],
)
def test_renewal_price(plan_name, plan_type, price, expected):
    assert renewal_price(membership(plan_name=plan_name, plan_type=plan_type, price=price)) == expected


def test_first_payment_is_initial():
    first = payment(1, 3650, created_at=FIRST_PAID)
    result = PaymentReconciler().classify(first, membership(), [first], [trainer_addon(created_at=FIRST_PAID)], [])
    assert result.type == PaymentPurpose.INITIAL
    assert result.confidence == Confidence.HIGH


def test_plan_price_payment_next_to_trainer_addon_is_membership_renewal():
    result = classify(payment(2, 650), membership(), [trainer_addon()])
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.MEDIUM
    assert result.matched_hypothesis is None


def test_amount_far_from_trainer_price_skips_hypotheses():
    result = classify(payment(2, 3650), membership(), [trainer_addon()])
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.MEDIUM
    assert result.matched_hypothesis is None


def test_plan_plus_trainer_payment_is_membership_renewal():
    result = classify(payment(2, 3600), membership(), [trainer_addon(price=3200)])
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.MEDIUM
    assert result.matched_hypothesis == "membership_with_trainer"
    assert result.expected_amount == 3850


def test_no_trainer_purchase_in_grace_is_confident_membership_renewal():
    result = classify(payment(2, 650), membership(status="grace_period"))
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.HIGH


def test_no_trainer_purchase_outside_grace_is_medium_confidence():
    result = classify(payment(2, 650), membership())
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.MEDIUM


def test_trainer_price_payment_is_trainer_renewal():
    result = classify(payment(2, 3000), membership(), [trainer_addon()])
    assert result.type == PaymentPurpose.TRAINER_RENEWAL
    assert result.confidence == Confidence.HIGH
    assert result.label == "Trainer Access Renewal"


def test_assignment_price_counts_as_candidate():
    assignment = AssignmentSnapshot(
        id=5, assignment_type="addon", status="active", trainer_price=3000, created_at=NOW + timedelta(minutes=1)
    )
    result = classify(payment(2, 2700), membership(), assignments=[assignment])
    assert result.type == PaymentPurpose.TRAINER_RENEWAL
    assert result.confidence == Confidence.MEDIUM


def test_unmatched_amount_is_membership_renewal():
    active = classify(payment(2, 5000), membership(), [trainer_addon()])
    assert active.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert active.confidence == Confidence.MEDIUM

    grace = classify(payment(2, 2000), membership(status="grace_period"), [trainer_addon()])
    assert grace.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert grace.confidence == Confidence.HIGH


def test_payment_made_during_past_grace_window_counts_as_grace():
    record = membership(end_date=NOW - timedelta(days=5), grace_period_end=NOW + timedelta(days=10))
    result = classify(payment(2, 2000), record, [trainer_addon()])
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.HIGH


@pytest.mark.parametrize(
    "offset, matched",
    [
        (timedelta(minutes=-4), True),
        (timedelta(minutes=-6), False),
        (timedelta(minutes=2), True),
        (timedelta(minutes=3), False),
    ],
)
def test_time_window_is_asymmetric(offset, matched):
    result = classify(payment(2, 3000), membership(), [trainer_addon(created_at=NOW + offset)])
    expected = PaymentPurpose.TRAINER_RENEWAL if matched else PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.type == expected


def test_verified_payment_ignores_pending_addons():
    result = classify(payment(2, 3000), membership(), [trainer_addon(status="pending")])
    assert result.type == PaymentPurpose.MEMBERSHIP_RENEWAL
    assert result.confidence == Confidence.MEDIUM


def test_pending_payment_matches_pending_addon():
    result = classify(payment(2, 3000, status="pending"), membership(), [trainer_addon(status="pending")])
    assert result.type == PaymentPurpose.TRAINER_RENEWAL


def test_history_is_newest_first():
    first = payment(1, 650, created_at=FIRST_PAID)
    second = payment(2, 3000)
    results = PaymentReconciler().classify_history(membership(), [first, second], [trainer_addon()], [])
    assert [r.payment_id for r in results] == [2, 1]
    assert [r.type for r in results] == [PaymentPurpose.TRAINER_RENEWAL, PaymentPurpose.INITIAL]


async def test_history_loads_from_database(db, make_membership, make_payment, make_addon):
    row = await make_membership(plan_name="Regular Monthly", price=1200)
    await make_payment(row.id, amount=1200, created_at=FIRST_PAID)
    await make_payment(row.id, amount=3400)
    await make_addon(row.id, status="active")

    history = await PaymentReconciler(db).history(row.id)
    assert history.renewal_price == 648
    assert [p.type for p in history.payments] == [PaymentPurpose.MEMBERSHIP_RENEWAL, PaymentPurpose.INITIAL]
    assert history.payments[0].matched_hypothesis == "membership_with_trainer"


async def test_history_of_missing_membership(db):
    assert await PaymentReconciler(db).history(999) is None
