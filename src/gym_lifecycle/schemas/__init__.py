from .base import BaseSchema
from .enums import (
    AddonStatus,
    AddonType,
    AssignmentStatus,
    AssignmentType,
    AuditAction,
    Confidence,
    EmailEventType,
    MembershipStatus,
    NotificationType,
    PaymentPurpose,
    PaymentStatus,
    PlanCategory,
    PlanMode,
)
from .audit import AuditLogEntry
from .email import EmailResult, UserProfile
from .expiry import EmailCounts, ExpiryCheckResponse
from .membership import MembershipRecord
from .notification import NotificationCreate
from .reconciliation import (
    AddonSnapshot,
    AssignmentSnapshot,
    PaymentClassification,
    PaymentHistoryResponse,
    PaymentSnapshot,
    TrainerPriceCandidate,
)
from .renewal import (
    AdminIdentity,
    RejectTrainerRenewalRequest,
    TrainerRenewal,
    TrainerRenewalRejectionResponse,
    TrainerRenewalResponse,
)
