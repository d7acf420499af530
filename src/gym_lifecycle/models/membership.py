from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from .base import Base


class Trainer(Base):
    """Trainer offering personal-training addons."""
    __tablename__ = "trainers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=True)  # auth user, used for trainer-side notifications
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=True)  # current price, informational only


class Membership(Base):
    """One purchased plan instance, including its trainer sub-state."""
    __tablename__ = "memberships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)

    plan_name = Column(String, nullable=False)
    plan_type = Column(String, nullable=False, default="in_gym")  # "online" or "in_gym"
    duration_months = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)

    status = Column(String, nullable=False, default="awaiting_payment", index=True)
    membership_start_date = Column(DateTime, nullable=True)
    membership_end_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)  # legacy column, superseded by membership_end_date
    grace_period_end = Column(DateTime, nullable=True)

    trainer_assigned = Column(Boolean, nullable=False, default=False)
    trainer_id = Column(Integer, ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True)
    trainer_period_end = Column(DateTime, nullable=True)
    trainer_grace_period_end = Column(DateTime, nullable=True)
    trainer_addon = Column(Boolean, nullable=False, default=False)

    # Relationships
    trainer = relationship("Trainer")
    payments = relationship("MembershipPayment", back_populates="membership", passive_deletes=True)
    addons = relationship("MembershipAddon", back_populates="membership", passive_deletes=True)
    assignments = relationship("TrainerAssignment", back_populates="membership", passive_deletes=True)

    @hybrid_property
    def resolved_end_date(self):
        """First non-null of the two end-date columns."""
        return self.membership_end_date or self.end_date

    @resolved_end_date.expression
    def resolved_end_date(cls):
        return func.coalesce(cls.membership_end_date, cls.end_date)


class MembershipAddon(Base):
    """Add-on purchase line (personal trainer or in-gym access)."""
    __tablename__ = "membership_addons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    membership_id = Column(Integer, ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False, index=True)
    addon_type = Column(String, nullable=False)  # "personal_trainer" or "in_gym"
    status = Column(String, nullable=False, default="pending")
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)  # captured at creation
    trainer_id = Column(Integer, ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True)

    membership = relationship("Membership", back_populates="addons")


class TrainerAssignment(Base):
    """Binding of a trainer to a membership for a period."""
    __tablename__ = "trainer_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    membership_id = Column(Integer, ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False, index=True)
    trainer_id = Column(Integer, ForeignKey("trainers.id", ondelete="SET NULL"), nullable=True)
    assignment_type = Column(String, nullable=False, default="initial")  # "initial" or "addon"
    status = Column(String, nullable=False, default="pending")
    period_start = Column(DateTime, nullable=True)
    period_end = Column(DateTime, nullable=True)

    membership = relationship("Membership", back_populates="assignments")
    trainer = relationship("Trainer")


class MembershipPayment(Base):
    """One purchase or renewal payment attempt."""
    __tablename__ = "membership_payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    membership_id = Column(Integer, ForeignKey("memberships.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    status = Column(String, nullable=False, default="pending")
    transaction_id = Column(String, nullable=True)
    verified_by = Column(String, nullable=True)
    verified_at = Column(DateTime, nullable=True)

    membership = relationship("Membership", back_populates="payments")
