from enum import Enum


class MembershipStatus(str, Enum):
    """Membership lifecycle states."""
    AWAITING_PAYMENT = "awaiting_payment"
    PENDING = "pending"
    ACTIVE = "active"
    GRACE_PERIOD = "grace_period"
    EXPIRED = "expired"


class PlanMode(str, Enum):
    """Where the plan is used."""
    ONLINE = "online"
    IN_GYM = "in_gym"


class PlanCategory(str, Enum):
    """Plan family resolved once from the free-text plan name."""
    REGULAR_MONTHLY = "regular_monthly"
    STANDARD = "standard"

    @classmethod
    def from_plan_name(cls, plan_name: str | None) -> "PlanCategory":
        name = (plan_name or "").lower()
        if "regular" in name and ("monthly" in name or "boys" in name or "girls" in name):
            return cls.REGULAR_MONTHLY
        return cls.STANDARD


class AddonType(str, Enum):
    PERSONAL_TRAINER = "personal_trainer"
    IN_GYM = "in_gym"


class AddonStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AssignmentType(str, Enum):
    INITIAL = "initial"
    ADDON = "addon"


class AssignmentStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACTIVE = "active"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PaymentPurpose(str, Enum):
    """What a payment paid for, as inferred by the reconciler."""
    INITIAL = "initial"
    MEMBERSHIP_RENEWAL = "membership_renewal"
    TRAINER_RENEWAL = "trainer_renewal"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EmailEventType(str, Enum):
    """Email templates tracked by the idempotency ledger."""
    PLAN_EXPIRY_REMINDER = "plan_expiry_reminder_5days"
    PLAN_EXPIRY_DAY = "plan_expiry_day"
    GRACE_PERIOD_START = "grace_period_start"
    GRACE_PERIOD_END = "grace_period_end"


class NotificationType(str, Enum):
    MEMBERSHIP_EXPIRING = "membership_expiring"
    MEMBERSHIP_GRACE_PERIOD_STARTED = "membership_grace_period_started"
    MEMBERSHIP_GRACE_PERIOD_REMINDER = "membership_grace_period_reminder"
    MEMBERSHIP_EXPIRED = "membership_expired"
    TRAINER_PERIOD_EXPIRING = "trainer_period_expiring"
    CLIENT_TRAINER_PERIOD_EXPIRING = "client_trainer_period_expiring"
    TRAINER_GRACE_PERIOD_STARTED = "trainer_grace_period_started"
    TRAINER_GRACE_PERIOD_REMINDER = "trainer_grace_period_reminder"
    TRAINER_PERIOD_EXPIRED = "trainer_period_expired"
    CLIENT_TRAINER_PERIOD_EXPIRED = "client_trainer_period_expired"
    TRAINER_RENEWAL_APPROVED = "trainer_renewal_approved"
    TRAINER_RENEWAL_REJECTED = "trainer_renewal_rejected"


class AuditAction(str, Enum):
    STATUS_CHANGED = "status_changed"
    MEMBERSHIP_GRACE_PERIOD_STARTED = "grace_period_started"
    MEMBERSHIP_TERMINATED = "membership_terminated"
    TRAINER_RENEWAL_APPROVED = "trainer_renewal_approved"
    TRAINER_RENEWAL_REJECTED = "trainer_renewal_rejected"
    TRAINER_GRACE_PERIOD_STARTED = "trainer_grace_period_started"
    TRAINER_GRACE_PERIOD_EXPIRED = "trainer_grace_period_expired"
