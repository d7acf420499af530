from datetime import datetime
from typing import Optional

from .base import BaseSchema
from .enums import MembershipStatus, PlanCategory, PlanMode


class MembershipRecord(BaseSchema):
    """Typed view of a membership row used by the lifecycle core.

    The two legacy end-date columns are folded into ``end_date`` and the plan
    name is classified into ``plan_category`` here, at the data-access
    boundary, so business logic never looks at either again.
    """
    id: int
    user_id: str
    plan_name: str
    plan_type: Optional[str] = None
    plan_category: PlanCategory = PlanCategory.STANDARD
    duration_months: Optional[int] = None
    price: float = 0.0
    status: str
    membership_start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    grace_period_end: Optional[datetime] = None
    trainer_assigned: bool = False
    trainer_id: Optional[int] = None
    trainer_period_end: Optional[datetime] = None
    trainer_grace_period_end: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, membership) -> "MembershipRecord":
        return cls(
            id=membership.id,
            user_id=membership.user_id,
            plan_name=membership.plan_name or "",
            plan_type=membership.plan_type,
            plan_category=PlanCategory.from_plan_name(membership.plan_name),
            duration_months=membership.duration_months,
            price=float(membership.price or 0),
            status=membership.status,
            membership_start_date=membership.membership_start_date,
            end_date=membership.membership_end_date or membership.end_date,
            grace_period_end=membership.grace_period_end,
            trainer_assigned=bool(membership.trainer_assigned),
            trainer_id=membership.trainer_id,
            trainer_period_end=membership.trainer_period_end,
            trainer_grace_period_end=membership.trainer_grace_period_end,
            created_at=membership.created_at,
        )

    @property
    def is_regular_monthly(self) -> bool:
        return self.plan_category == PlanCategory.REGULAR_MONTHLY

    @property
    def is_in_gym(self) -> bool:
        return self.plan_type == PlanMode.IN_GYM.value

    @property
    def in_grace_period(self) -> bool:
        return self.status == MembershipStatus.GRACE_PERIOD.value
