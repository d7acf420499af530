from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text

from .base import Base


class Admin(Base):
    """Admin account allowed to trigger jobs and approve renewals."""
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    auth_user_id = Column(String, nullable=True)  # Supabase auth user id, for audit trails
    is_active = Column(Boolean, nullable=False, default=True)


class AdminSetting(Base):
    """Key/value settings editable from the admin portal."""
    __tablename__ = "admin_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    setting_key = Column(String, nullable=False, unique=True)
    setting_value = Column(String, nullable=True)


class EmailEvent(Base):
    """Append-only ledger of sent lifecycle emails, one row per (user, membership, event)."""
    __tablename__ = "email_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    membership_id = Column(Integer, nullable=True)  # no FK, the ledger outlives deleted memberships
    event_type = Column(String, nullable=False)
    email_address = Column(String, nullable=True)
    sent_at = Column(DateTime, nullable=False)


class EmailFailure(Base):
    """Send failures kept for admin visibility until a later attempt succeeds."""
    __tablename__ = "email_failures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    membership_id = Column(Integer, nullable=True)
    event_type = Column(String, nullable=False)
    email_address = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    resolved_at = Column(DateTime, nullable=True)


class Notification(Base):
    """In-app notification for a member or trainer."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_id = Column(String, nullable=False, index=True)
    actor_role = Column(String, nullable=False, default="system")
    type = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    reference_key = Column(String, nullable=True, index=True)
    metadata_ = Column("metadata", JSON, nullable=True)


class AdminNotification(Base):
    """Notification shown in the admin portal."""
    __tablename__ = "admin_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_type = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    reference_id = Column(String, nullable=True)
    actor_role = Column(String, nullable=False, default="system")
    is_read = Column(Boolean, nullable=False, default=False)
    reference_key = Column(String, nullable=True, index=True)


class AuditLog(Base):
    """Audit trail of membership operations."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    membership_id = Column(Integer, nullable=False, index=True)
    action = Column(String, nullable=False)
    admin_id = Column(String, nullable=True)
    admin_email = Column(String, nullable=True)
    previous_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    details = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)


class Invoice(Base):
    """Invoice bookkeeping row for a verified payment."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_number = Column(String, nullable=False, unique=True)
    payment_id = Column(Integer, ForeignKey("membership_payments.id", ondelete="SET NULL"), nullable=True)
    membership_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    invoice_type = Column(String, nullable=False)
    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    file_url = Column(String, nullable=True)
