"""
Payment classification.

Payments carry no reference to the addon or plan they paid for, so what a
historical payment was for is inferred from two signals: trainer addons or
assignments created around the same time, and how close the amount is to the
prices those purchases would have cost. The membership's grace status is the
last resort when neither is conclusive.

Precedence is fixed: chronologically-first payment, then the closest price
hypothesis by relative distance (absolute distance breaks near-ties), then the
grace-status fallback. Reports built on these labels rely on that order.
"""
import logging
import math
from datetime import timedelta
from functools import cmp_to_key
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.crud_addon import addon as addon_crud
from gym_lifecycle.crud.crud_assignment import assignment as assignment_crud
from gym_lifecycle.crud.crud_membership import membership as membership_crud
from gym_lifecycle.crud.crud_payment import payment as payment_crud
from gym_lifecycle.schemas.enums import (
    AddonStatus,
    AddonType,
    AssignmentType,
    Confidence,
    PaymentPurpose,
    PaymentStatus,
)
from gym_lifecycle.schemas.membership import MembershipRecord
from gym_lifecycle.schemas.reconciliation import (
    AddonSnapshot,
    AssignmentSnapshot,
    PaymentClassification,
    PaymentHistoryResponse,
    PaymentSnapshot,
    TrainerPriceCandidate,
)

logger = logging.getLogger(__name__)

MATCH_WINDOW_BEFORE = timedelta(minutes=5)
MATCH_WINDOW_AFTER = timedelta(minutes=2)
MAX_PERCENTAGE_DIFFERENCE = 0.15
TIE_BREAK_PERCENTAGE = 0.02
HIGH_CONFIDENCE_PERCENTAGE = 0.05

REGULAR_MONTHLY_RENEWAL_RATIO = 0.54
MIN_REGULAR_MONTHLY_RENEWAL = 500

TRAINER_ONLY = "trainer_only"
MEMBERSHIP_WITH_TRAINER = "membership_with_trainer"
MEMBERSHIP_ONLY = "membership_only"

LABELS = {
    PaymentPurpose.INITIAL: "Initial Purchase",
    PaymentPurpose.MEMBERSHIP_RENEWAL: "Membership Plan Renewal",
    PaymentPurpose.TRAINER_RENEWAL: "Trainer Access Renewal",
}


def renewal_price(membership: MembershipRecord) -> float:
    """What renewing the plan costs.

    In-gym Regular Monthly plans are sold with an admission component, so a
    renewal costs about 54% of the stored price (1200 -> 648, 1400 -> 756);
    a result under 500 is treated as implausible and the stored price is used.
    Every other plan renews at its stored price.
    """
    if membership.is_regular_monthly and membership.is_in_gym:
        calculated = math.floor(membership.price * REGULAR_MONTHLY_RENEWAL_RATIO + 0.5)
        if calculated >= MIN_REGULAR_MONTHLY_RENEWAL:
            return float(calculated)
    return membership.price


def relative_difference(amount: float, expected: float) -> float:
    return abs(amount - expected) / expected if expected > 0 else math.inf


class Hypothesis:
    def __init__(self, name: str, expected: float, amount: float):
        self.name = name
        self.expected = expected
        self.diff = abs(amount - expected)
        self.percent_diff = relative_difference(amount, expected)


def _compare_hypotheses(a: Hypothesis, b: Hypothesis) -> int:
    # near-ties on relative distance fall back to absolute distance
    both_finite = math.isfinite(a.percent_diff) and math.isfinite(b.percent_diff)
    if both_finite and abs(a.percent_diff - b.percent_diff) < TIE_BREAK_PERCENTAGE:
        first, second = a.diff, b.diff
    else:
        first, second = a.percent_diff, b.percent_diff
    return (first > second) - (first < second)


def _in_window(payment: PaymentSnapshot, created_at) -> bool:
    delta = created_at - payment.created_at
    if delta < timedelta(0):
        return -delta < MATCH_WINDOW_BEFORE
    return delta <= MATCH_WINDOW_AFTER


def _status_matches(payment: PaymentSnapshot, status: str) -> bool:
    if payment.status == PaymentStatus.PENDING.value:
        return status in (AddonStatus.PENDING.value, AddonStatus.ACTIVE.value)
    return status == AddonStatus.ACTIVE.value


class PaymentReconciler:
    """Classifies payments as initial purchase, membership renewal or trainer renewal."""

    def __init__(self, db: Optional[AsyncSession] = None):
        self.db = db

    def trainer_candidates(
        self,
        payment: PaymentSnapshot,
        addons: Sequence[AddonSnapshot],
        assignments: Sequence[AssignmentSnapshot],
    ) -> List[TrainerPriceCandidate]:
        """Trainer addons and addon assignments created close enough to the payment to belong to it."""
        candidates = [
            TrainerPriceCandidate(source="addon", id=a.id, price=a.price or 0.0, created_at=a.created_at)
            for a in addons
            if a.addon_type == AddonType.PERSONAL_TRAINER.value
            and _status_matches(payment, a.status)
            and _in_window(payment, a.created_at)
        ]
        candidates += [
            TrainerPriceCandidate(source="assignment", id=a.id, price=a.trainer_price or 0.0, created_at=a.created_at)
            for a in assignments
            if a.assignment_type == AssignmentType.ADDON.value
            and _status_matches(payment, a.status)
            and _in_window(payment, a.created_at)
        ]
        return candidates

    @staticmethod
    def in_grace_at(payment: PaymentSnapshot, membership: MembershipRecord) -> bool:
        """Grace now, or the payment was made between the end date and the grace end."""
        if membership.in_grace_period:
            return True
        if membership.grace_period_end and membership.end_date:
            return membership.end_date <= payment.created_at <= membership.grace_period_end
        return False

    @staticmethod
    def _result(
        payment: PaymentSnapshot,
        purpose: PaymentPurpose,
        confidence: Confidence,
        hypothesis: Optional[Hypothesis] = None,
    ) -> PaymentClassification:
        return PaymentClassification(
            payment_id=payment.id,
            type=purpose,
            label=LABELS[purpose],
            confidence=confidence,
            matched_hypothesis=hypothesis.name if hypothesis else None,
            expected_amount=hypothesis.expected if hypothesis else None,
        )

    def classify(
        self,
        payment: PaymentSnapshot,
        membership: MembershipRecord,
        payments: Sequence[PaymentSnapshot],
        addons: Sequence[AddonSnapshot],
        assignments: Sequence[AssignmentSnapshot],
    ) -> PaymentClassification:
        first = min(payments, key=lambda p: (p.created_at, p.id), default=payment)
        if first.id == payment.id:
            return self._result(payment, PaymentPurpose.INITIAL, Confidence.HIGH)

        in_grace = self.in_grace_at(payment, membership)
        candidates = self.trainer_candidates(payment, addons, assignments)
        nearest = min(candidates, key=lambda c: relative_difference(payment.amount, c.price), default=None)
        if nearest is None or relative_difference(payment.amount, nearest.price) > MAX_PERCENTAGE_DIFFERENCE:
            # no trainer purchase priced like this payment, so it renews the plan
            return self._result(
                payment, PaymentPurpose.MEMBERSHIP_RENEWAL, Confidence.HIGH if in_grace else Confidence.MEDIUM
            )

        trainer_price = nearest.price
        plan_price = renewal_price(membership)
        hypotheses = sorted(
            [
                Hypothesis(TRAINER_ONLY, trainer_price, payment.amount),
                Hypothesis(MEMBERSHIP_WITH_TRAINER, plan_price + trainer_price, payment.amount),
                Hypothesis(MEMBERSHIP_ONLY, plan_price, payment.amount),
            ],
            key=cmp_to_key(_compare_hypotheses),
        )
        best = hypotheses[0]
        if best.percent_diff <= MAX_PERCENTAGE_DIFFERENCE:
            confidence = Confidence.HIGH if best.percent_diff < HIGH_CONFIDENCE_PERCENTAGE else Confidence.MEDIUM
            purpose = PaymentPurpose.TRAINER_RENEWAL if best.name == TRAINER_ONLY else PaymentPurpose.MEMBERSHIP_RENEWAL
            return self._result(payment, purpose, confidence, best)

        logger.debug(
            f"Payment {payment.id} ({payment.amount}) matches no price hypothesis, using membership status"
        )
        purpose = PaymentPurpose.MEMBERSHIP_RENEWAL if in_grace else PaymentPurpose.TRAINER_RENEWAL
        return self._result(payment, purpose, Confidence.LOW)

    def classify_history(
        self,
        membership: MembershipRecord,
        payments: Sequence[PaymentSnapshot],
        addons: Sequence[AddonSnapshot],
        assignments: Sequence[AssignmentSnapshot],
    ) -> List[PaymentClassification]:
        """Classify every payment of a membership, newest first."""
        ordered = sorted(payments, key=lambda p: (p.created_at, p.id), reverse=True)
        return [self.classify(p, membership, payments, addons, assignments) for p in ordered]

    async def history(self, membership_id: int) -> Optional[PaymentHistoryResponse]:
        """Load a membership's payments and purchases and classify them. None if the membership is gone."""
        row = await membership_crud.get(self.db, id=membership_id)
        if row is None:
            return None
        record = MembershipRecord.from_model(row)
        payments = [
            PaymentSnapshot.model_validate(p) for p in await payment_crud.get_for_membership(self.db, membership_id=membership_id)
        ]
        addons = [
            AddonSnapshot.model_validate(a) for a in await addon_crud.get_for_membership(self.db, membership_id=membership_id)
        ]
        assignments = [
            AssignmentSnapshot(
                id=a.id,
                assignment_type=a.assignment_type,
                status=a.status,
                trainer_id=a.trainer_id,
                trainer_price=price,
                created_at=a.created_at,
            )
            for a, price in await assignment_crud.get_for_membership_with_price(self.db, membership_id=membership_id)
        ]
        return PaymentHistoryResponse(
            membership_id=record.id,
            plan_name=record.plan_name,
            renewal_price=renewal_price(record),
            payments=self.classify_history(record, payments, addons, assignments),
        )
