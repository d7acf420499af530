from datetime import datetime
from typing import Optional

from .base import BaseSchema


class AdminIdentity(BaseSchema):
    """The admin performing a workflow action."""
    email: str
    auth_user_id: Optional[str] = None
    name: Optional[str] = None


class TrainerRenewal(BaseSchema):
    membership_id: int
    payment_id: int
    addon_id: int
    assignment_id: Optional[int] = None
    trainer_id: Optional[int] = None
    trainer_name: Optional[str] = None
    renewal_start_date: datetime
    renewal_end_date: datetime
    duration_months: int


class TrainerRenewalResponse(BaseSchema):
    success: bool = True
    message: str = "Trainer renewal approved successfully"
    trainer_renewal: TrainerRenewal


class RejectTrainerRenewalRequest(BaseSchema):
    reason: Optional[str] = None


class TrainerRenewalRejectionResponse(BaseSchema):
    success: bool = True
    message: str = "Trainer renewal rejected"
    membership_id: int
    payment_id: int
    removed_addon_id: Optional[int] = None
    removed_assignment_id: Optional[int] = None
