"""
Admin approval and rejection of trainer-access renewals.

A member renewing trainer access submits a payment; a pending personal-trainer
addon (and usually a pending addon assignment) is created next to it. The
approval matches those records to the payment, verifies it and extends the
trainer period by one month, never past the membership's own end date. The
payment, addon, assignment and membership writes commit together; the audit
entry, notification, invoice and realtime broadcast that follow are
best-effort.
"""
import calendar
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.core.config import settings
from gym_lifecycle.core.exceptions import ApprovalRejected
from gym_lifecycle.crud.crud_addon import addon as addon_crud
from gym_lifecycle.crud.crud_assignment import assignment as assignment_crud
from gym_lifecycle.crud.crud_membership import membership as membership_crud
from gym_lifecycle.crud.crud_membership import trainer as trainer_crud
from gym_lifecycle.crud.crud_payment import payment as payment_crud
from gym_lifecycle.models.membership import MembershipAddon, TrainerAssignment
from gym_lifecycle.schemas.audit import AuditLogEntry
from gym_lifecycle.schemas.enums import (
    AssignmentStatus,
    AssignmentType,
    AuditAction,
    MembershipStatus,
    NotificationType,
    PaymentPurpose,
)
from gym_lifecycle.schemas.membership import MembershipRecord
from gym_lifecycle.schemas.notification import NotificationCreate
from gym_lifecycle.schemas.renewal import (
    AdminIdentity,
    TrainerRenewal,
    TrainerRenewalRejectionResponse,
    TrainerRenewalResponse,
)
from gym_lifecycle.services.audit_log import AuditLogService
from gym_lifecycle.services.invoice_service import InvoiceService
from gym_lifecycle.services.notification_service import NotificationService
from gym_lifecycle.services.realtime_service import RealtimeService

logger = logging.getLogger(__name__)

MATCH_WINDOW = timedelta(minutes=5)
ADDON_PRICE_TOLERANCE = 10.0
PAYMENT_AMOUNT_TOLERANCE = 1.0
FALLBACK_CANDIDATES = 10


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month addition; the day clamps to the end of a shorter month (Jan 31 -> Feb 28)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def trainer_renewal_end_date(start: datetime, months: int, membership_end: datetime) -> datetime:
    """End of a trainer renewal period, never later than the membership itself."""
    proposed = add_months(start, months)
    return proposed if proposed <= membership_end else membership_end


def pick_addon(addons: Sequence[MembershipAddon], amount: float) -> Optional[MembershipAddon]:
    """Addon whose price is nearest the payment within tolerance, else the most recent one."""
    if not addons:
        return None
    nearest = min(addons, key=lambda a: abs(float(a.price or 0) - amount))
    if abs(float(nearest.price or 0) - amount) <= ADDON_PRICE_TOLERANCE:
        return nearest
    return addons[0]


def pick_assignment(assignments: Sequence[TrainerAssignment], trainer_id: Optional[int]) -> Optional[TrainerAssignment]:
    for candidate in assignments:
        if candidate.trainer_id == trainer_id:
            return candidate
    return assignments[0] if assignments else None


def _candidate_debug(addons: Sequence[MembershipAddon]) -> List[dict]:
    return [{"id": a.id, "price": a.price, "created_at": a.created_at.isoformat()} for a in addons]


class TrainerRenewalService:
    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[BusinessClock] = None,
        audit: Optional[AuditLogService] = None,
        notifications: Optional[NotificationService] = None,
        invoices: Optional[InvoiceService] = None,
        realtime: Optional[RealtimeService] = None,
    ):
        self.db = db
        self.clock = clock or BusinessClock()
        self.audit = audit or AuditLogService(db)
        self.notifications = notifications or NotificationService(db)
        self.invoices = invoices or InvoiceService(db, self.clock)
        self.realtime = realtime or RealtimeService()
        self.renewal_months = settings.TRAINER_RENEWAL_MONTHS

    async def _load_membership(self, membership_id: int) -> MembershipRecord:
        row = await membership_crud.get(self.db, id=membership_id)
        if row is None:
            raise ApprovalRejected(404, "Membership not found")
        return MembershipRecord.from_model(row)

    async def _find_addon(self, membership_id: int, created_at: datetime) -> List[MembershipAddon]:
        addons = await addon_crud.get_pending_trainer_addons_between(
            self.db, membership_id=membership_id, start=created_at - MATCH_WINDOW, end=created_at + MATCH_WINDOW
        )
        if not addons:
            addons = await addon_crud.get_recent_pending_trainer_addons(
                self.db, membership_id=membership_id, limit=FALLBACK_CANDIDATES
            )
        return addons

    async def _find_assignments(self, membership_id: int, created_at: datetime) -> List[TrainerAssignment]:
        assignments = await assignment_crud.get_pending_addon_between(
            self.db, membership_id=membership_id, start=created_at - MATCH_WINDOW, end=created_at + MATCH_WINDOW
        )
        if not assignments:
            assignments = await assignment_crud.get_recent_pending_addon(
                self.db, membership_id=membership_id, limit=FALLBACK_CANDIDATES
            )
        return assignments

    async def approve(self, membership_id: int, admin: AdminIdentity) -> TrainerRenewalResponse:
        record = await self._load_membership(membership_id)
        if record.status != MembershipStatus.ACTIVE.value:
            raise ApprovalRejected(
                400,
                f"Cannot approve trainer renewal. Membership status is '{record.status}'. "
                f"Trainer renewal requires an active membership.",
            )

        pending = await payment_crud.get_latest_pending(self.db, membership_id=membership_id)
        if pending is None:
            raise ApprovalRejected(404, "No pending payment found for trainer renewal")
        amount = float(pending.amount or 0)

        addons = await self._find_addon(membership_id, pending.created_at)
        addon = pick_addon(addons, amount)
        if addon is None:
            raise ApprovalRejected(
                404,
                "No pending trainer addon found for this payment",
                details=(
                    f"Payment amount: {amount}. No pending trainer addon matches this payment. "
                    f"The addon may not have been created during payment submission."
                ),
                debug={
                    "paymentId": pending.id,
                    "paymentAmount": amount,
                    "foundAddonsCount": len(addons),
                    "foundAddons": _candidate_debug(addons),
                },
            )

        assignments = await self._find_assignments(membership_id, pending.created_at)
        assignment = pick_assignment(assignments, addon.trainer_id)

        if record.end_date is None:
            raise ApprovalRejected(
                400, "Membership end date is missing. Cannot calculate trainer renewal period."
            )

        expected = float(addon.price or 0)
        if abs(amount - expected) > PAYMENT_AMOUNT_TOLERANCE:
            raise ApprovalRejected(
                400,
                f"Payment amount ({amount}) does not match trainer addon price ({expected})",
                paymentAmount=amount,
                expectedAmount=expected,
            )

        now = self.clock.now()
        start = record.trainer_period_end or now
        end = trainer_renewal_end_date(start, self.renewal_months, record.end_date)

        try:
            await payment_crud.reject_other_pending(
                self.db,
                membership_id=membership_id,
                keep_id=pending.id,
                verified_by=admin.auth_user_id,
                verified_at=now,
                commit=False,
            )
            if not await payment_crud.verify(
                self.db, id=pending.id, verified_by=admin.auth_user_id, verified_at=now, commit=False
            ):
                raise ApprovalRejected(409, "Payment is no longer pending")
            if not await addon_crud.activate(self.db, id=addon.id, commit=False):
                raise ApprovalRejected(409, "Trainer addon is no longer pending")
            if assignment is not None:
                await assignment_crud.mark_assigned(
                    self.db,
                    id=assignment.id,
                    trainer_id=addon.trainer_id,
                    period_start=start,
                    period_end=end,
                    commit=False,
                )
            if not await membership_crud.extend_trainer_period(
                self.db, id=membership_id, trainer_id=addon.trainer_id, trainer_period_end=end, commit=False
            ):
                raise ApprovalRejected(409, "Membership is no longer active")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        assignment_id = assignment.id if assignment is not None else await self._create_assignment(
            membership_id, addon.trainer_id, start, end
        )
        logger.info(
            f"Trainer renewal approved for membership {membership_id} by {admin.email}: "
            f"payment {pending.id}, addon {addon.id}, period {start.isoformat()} -> {end.isoformat()}"
        )

        trainer_name = await self._trainer_name(addon.trainer_id)
        renewal = TrainerRenewal(
            membership_id=membership_id,
            payment_id=pending.id,
            addon_id=addon.id,
            assignment_id=assignment_id,
            trainer_id=addon.trainer_id,
            trainer_name=trainer_name,
            renewal_start_date=start,
            renewal_end_date=end,
            duration_months=self.renewal_months,
        )
        await self._after_approval(record, renewal, admin, amount)
        return TrainerRenewalResponse(trainer_renewal=renewal)

    async def _create_assignment(
        self, membership_id: int, trainer_id: Optional[int], start: datetime, end: datetime
    ) -> Optional[int]:
        try:
            created = await assignment_crud.create(
                self.db,
                obj_in={
                    "membership_id": membership_id,
                    "trainer_id": trainer_id,
                    "assignment_type": AssignmentType.ADDON.value,
                    "status": AssignmentStatus.ASSIGNED.value,
                    "period_start": start,
                    "period_end": end,
                },
            )
            return created.id
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to create trainer assignment for membership {membership_id}: {str(e)}")
            return None

    async def _trainer_name(self, trainer_id: Optional[int]) -> Optional[str]:
        if not trainer_id:
            return None
        try:
            row = await trainer_crud.get(self.db, id=trainer_id)
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"Trainer lookup failed for trainer {trainer_id}: {str(e)}")
            return None
        return row.name if row else None

    async def _after_approval(
        self, record: MembershipRecord, renewal: TrainerRenewal, admin: AdminIdentity, amount: float
    ) -> None:
        end = renewal.renewal_end_date
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=record.id,
                action=AuditAction.TRAINER_RENEWAL_APPROVED.value,
                admin_id=admin.auth_user_id,
                admin_email=admin.email,
                previous_status=record.trainer_period_end.isoformat() if record.trainer_period_end else "expired",
                new_status=end.isoformat(),
                details=(
                    f"Trainer renewal approved. Extended trainer period to {end.isoformat()}. "
                    f"Duration: {renewal.duration_months} month(s)."
                ),
                metadata={
                    "payment_id": renewal.payment_id,
                    "addon_id": renewal.addon_id,
                    "assignment_id": renewal.assignment_id,
                    "trainer_id": renewal.trainer_id,
                    "duration_months": renewal.duration_months,
                    "renewal_start_date": renewal.renewal_start_date.isoformat(),
                    "renewal_end_date": end.isoformat(),
                },
            )
        )
        local_end = self.clock.to_local(end)
        await self.notifications.create_bulk(
            [
                NotificationCreate(
                    recipient_id=record.user_id,
                    actor_role="admin",
                    type=NotificationType.TRAINER_RENEWAL_APPROVED.value,
                    content=(
                        f"Your trainer access renewal has been approved. {renewal.trainer_name or 'Trainer'} "
                        f"access extended until {local_end:%d/%m/%Y}."
                    ),
                    metadata={
                        "membership_id": record.id,
                        "trainer_id": renewal.trainer_id,
                        "trainer_name": renewal.trainer_name,
                        "renewal_end_date": end.isoformat(),
                    },
                )
            ]
        )
        await self.invoices.generate_for_payment(
            payment_id=renewal.payment_id,
            membership_id=record.id,
            user_id=record.user_id,
            amount=amount,
            invoice_type=PaymentPurpose.TRAINER_RENEWAL.value,
        )
        await self.realtime.broadcast(
            f"user_{record.user_id}_notifications",
            "notification",
            {
                "type": NotificationType.TRAINER_RENEWAL_APPROVED.value,
                "content": "Your trainer access renewal has been approved.",
            },
        )

    async def reject(
        self, membership_id: int, admin: AdminIdentity, reason: Optional[str] = None
    ) -> TrainerRenewalRejectionResponse:
        """Reject the pending renewal payment and drop the pending addon and assignment created with it."""
        record = await self._load_membership(membership_id)
        pending = await payment_crud.get_latest_pending(self.db, membership_id=membership_id)
        if pending is None:
            raise ApprovalRejected(404, "No pending payment found for trainer renewal")

        addon = await addon_crud.get_pending_trainer_addon_after(
            self.db, membership_id=membership_id, after=pending.created_at
        )
        assignment = await assignment_crud.get_pending_addon_after(
            self.db, membership_id=membership_id, after=pending.created_at
        )
        now = self.clock.now()
        try:
            if not await payment_crud.reject(
                self.db, id=pending.id, verified_by=admin.auth_user_id, verified_at=now, commit=False
            ):
                raise ApprovalRejected(409, "Payment is no longer pending")
            if addon is not None:
                await addon_crud.delete_pending(self.db, id=addon.id, commit=False)
            if assignment is not None:
                await assignment_crud.delete_pending(self.db, id=assignment.id, commit=False)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        reason_text = reason or "No reason provided"
        logger.info(f"Trainer renewal payment {pending.id} for membership {membership_id} rejected by {admin.email}")
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=membership_id,
                action=AuditAction.TRAINER_RENEWAL_REJECTED.value,
                admin_id=admin.auth_user_id,
                admin_email=admin.email,
                previous_status="pending",
                new_status="rejected",
                details=f"Trainer renewal payment rejected. Reason: {reason_text}",
                metadata={
                    "payment_id": pending.id,
                    "addon_id": addon.id if addon else None,
                    "assignment_id": assignment.id if assignment else None,
                    "rejection_reason": reason_text,
                },
            )
        )
        await self.notifications.create_bulk(
            [
                NotificationCreate(
                    recipient_id=record.user_id,
                    actor_role="admin",
                    type=NotificationType.TRAINER_RENEWAL_REJECTED.value,
                    content=(
                        "Your trainer access renewal payment has been rejected."
                        + (f" Reason: {reason}" if reason else "")
                        + " Please contact admin for more information."
                    ),
                    metadata={
                        "membership_id": membership_id,
                        "payment_id": pending.id,
                        "rejection_reason": reason_text,
                    },
                )
            ]
        )
        return TrainerRenewalRejectionResponse(
            membership_id=membership_id,
            payment_id=pending.id,
            removed_addon_id=addon.id if addon else None,
            removed_assignment_id=assignment.id if assignment else None,
        )
