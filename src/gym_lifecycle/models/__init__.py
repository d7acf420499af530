from .base import Base
from .core import Admin, AdminNotification, AdminSetting, AuditLog, EmailEvent, EmailFailure, Invoice, Notification
from .membership import Membership, MembershipAddon, MembershipPayment, Trainer, TrainerAssignment

__all__ = [
    "Base",
    "Admin",
    "AdminNotification",
    "AdminSetting",
    "AuditLog",
    "EmailEvent",
    "EmailFailure",
    "Invoice",
    "Notification",
    "Membership",
    "MembershipAddon",
    "MembershipPayment",
    "Trainer",
    "TrainerAssignment",
]
