from datetime import datetime
from typing import Literal, Optional

from .base import BaseSchema
from .enums import Confidence, PaymentPurpose


class PaymentSnapshot(BaseSchema):
    """The fields of a payment the reconciler looks at."""
    id: int
    amount: float
    status: str
    created_at: datetime
    transaction_id: Optional[str] = None


class AddonSnapshot(BaseSchema):
    id: int
    addon_type: str
    status: str
    price: float = 0.0
    trainer_id: Optional[int] = None
    created_at: datetime


class AssignmentSnapshot(BaseSchema):
    id: int
    assignment_type: str
    status: str
    trainer_id: Optional[int] = None
    trainer_price: Optional[float] = None
    created_at: datetime


class TrainerPriceCandidate(BaseSchema):
    """An addon or assignment close enough in time to have been paid for by a payment."""
    source: Literal["addon", "assignment"]
    id: int
    price: float
    created_at: datetime


class PaymentClassification(BaseSchema):
    payment_id: int
    type: PaymentPurpose
    label: str
    confidence: Confidence
    matched_hypothesis: Optional[str] = None
    expected_amount: Optional[float] = None


class PaymentHistoryResponse(BaseSchema):
    membership_id: int
    plan_name: str
    renewal_price: float
    payments: list[PaymentClassification]
