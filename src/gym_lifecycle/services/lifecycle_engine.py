"""
State transitions driven by the expiry job.

Every transition is a single guarded UPDATE or DELETE whose WHERE clause
re-checks the state the candidate was selected in. When the guard no longer
holds (another run got there first, or an admin changed the row) the call is a
no-op, which keeps repeated and overlapping runs idempotent. Side effects only
follow a transition this call actually performed.
"""
import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.crud.crud_assignment import assignment
from gym_lifecycle.crud.crud_membership import membership, trainer
from gym_lifecycle.schemas.audit import AuditLogEntry
from gym_lifecycle.schemas.enums import AuditAction, MembershipStatus, NotificationType
from gym_lifecycle.schemas.expiry import EmailCounts
from gym_lifecycle.schemas.membership import MembershipRecord
from gym_lifecycle.schemas.notification import NotificationCreate
from gym_lifecycle.services.audit_log import AuditLogService
from gym_lifecycle.services.email_service import EmailDispatcher
from gym_lifecycle.services.grace_period import GracePolicy, membership_grace, trainer_grace
from gym_lifecycle.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


async def trainer_user_id(db: AsyncSession, trainer_id: Optional[int]) -> Optional[str]:
    """Auth user of a trainer, for trainer-side notifications. None when unknown."""
    if not trainer_id:
        return None
    try:
        row = await trainer.get(db, id=trainer_id)
    except Exception as e:
        await db.rollback()
        logger.warning(f"Trainer lookup failed for trainer {trainer_id}: {str(e)}")
        return None
    return row.user_id if row else None


class LifecycleTransitionEngine:
    def __init__(
        self,
        db: AsyncSession,
        clock: BusinessClock,
        notifications: NotificationService,
        emails: EmailDispatcher,
        audit: AuditLogService,
        email_counts: Optional[EmailCounts] = None,
        membership_policy: GracePolicy = membership_grace,
        trainer_policy: GracePolicy = trainer_grace,
    ):
        self.db = db
        self.clock = clock
        self.notifications = notifications
        self.emails = emails
        self.audit = audit
        self.email_counts = email_counts if email_counts is not None else EmailCounts()
        self.membership_policy = membership_policy
        self.trainer_policy = trainer_policy
        self.notifications_created = 0

    async def _notify(self, rows: List[NotificationCreate]) -> None:
        self.notifications_created += await self.notifications.create_bulk(rows)

    async def enter_grace(self, record: MembershipRecord) -> bool:
        """``active -> grace_period``; Regular Monthly plans lose their trainer in the same step."""
        if record.end_date is None:
            logger.warning(f"Membership {record.id} has no end date, cannot start grace period")
            return False
        grace_end = self.membership_policy.compute_grace_end(record.end_date)
        coupled = record.is_regular_monthly
        try:
            moved = await membership.mark_grace_period(
                self.db, id=record.id, grace_period_end=grace_end, clear_trainer=coupled, commit=False
            )
            if not moved:
                await self.db.rollback()
                return False
            if coupled:
                await assignment.expire_assigned(self.db, membership_id=record.id, commit=False)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to move membership {record.id} into grace period: {str(e)}")
            return False

        logger.info(f"Membership {record.id} entered grace period until {grace_end.isoformat()}")

        try:
            result = await self.emails.send_grace_period_start(record.user_id, record.id, record.plan_name, grace_end)
            self.email_counts.tally("grace_period_start", result)
        except Exception as e:
            self.email_counts.failed += 1
            logger.error(f"Grace period start email failed for membership {record.id}: {str(e)}")

        days = self.membership_policy.grace_days
        await self._notify(
            [
                NotificationCreate(
                    recipient_id=record.user_id,
                    type=NotificationType.MEMBERSHIP_GRACE_PERIOD_STARTED.value,
                    content=(
                        f"Your {record.plan_name} membership has ended. You have a {days}-day grace period "
                        f"to renew before it is removed."
                    ),
                    metadata={"membership_id": record.id, "grace_period_end": grace_end.isoformat()},
                ),
                NotificationCreate(
                    type=NotificationType.MEMBERSHIP_GRACE_PERIOD_STARTED.value,
                    content=f"User's {record.plan_name} membership entered its {days}-day grace period.",
                    reference_id=str(record.id),
                ),
            ]
        )
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=record.id,
                action=AuditAction.MEMBERSHIP_GRACE_PERIOD_STARTED.value,
                previous_status=MembershipStatus.ACTIVE.value,
                new_status=MembershipStatus.GRACE_PERIOD.value,
                details=f"Grace period started, ends {grace_end.isoformat()}",
                metadata={"grace_period_end": grace_end.isoformat(), "trainer_cleared": coupled},
            )
        )
        return True

    async def terminate(self, record: MembershipRecord) -> bool:
        """Delete a membership whose grace period has run out."""
        try:
            deleted = await membership.delete_after_grace(self.db, id=record.id, now=self.clock.now())
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to terminate membership {record.id}: {str(e)}")
            return False
        if not deleted:
            return False

        logger.info(f"Membership {record.id} deleted after grace period")
        await self._notify(
            [
                NotificationCreate(
                    recipient_id=record.user_id,
                    type=NotificationType.MEMBERSHIP_EXPIRED.value,
                    content=(
                        f"Your {record.plan_name} membership has expired and the grace period has ended. "
                        f"Please purchase a new plan."
                    ),
                    metadata={"membership_id": record.id},
                ),
                NotificationCreate(
                    type=NotificationType.MEMBERSHIP_EXPIRED.value,
                    content=f"User's {record.plan_name} membership was removed after its grace period ended.",
                    reference_id=str(record.id),
                ),
            ]
        )
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=record.id,
                action=AuditAction.MEMBERSHIP_TERMINATED.value,
                previous_status=MembershipStatus.GRACE_PERIOD.value,
                details="Membership deleted after grace period",
            )
        )
        return True

    async def expire_legacy(self, record: MembershipRecord) -> bool:
        """``active -> expired`` for memberships that ended before grace periods existed."""
        try:
            moved = await membership.mark_legacy_expired(self.db, id=record.id)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to expire legacy membership {record.id}: {str(e)}")
            return False
        if not moved:
            return False

        logger.info(f"Legacy membership {record.id} marked expired")
        await self._notify(
            [
                NotificationCreate(
                    recipient_id=record.user_id,
                    type=NotificationType.MEMBERSHIP_EXPIRED.value,
                    content=f"Your {record.plan_name} membership has expired. Please renew your plan.",
                    metadata={"membership_id": record.id},
                ),
                NotificationCreate(
                    type=NotificationType.MEMBERSHIP_EXPIRED.value,
                    content=f"User's {record.plan_name} membership has expired. Please remove or follow up.",
                    reference_id=str(record.id),
                ),
            ]
        )
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=record.id,
                action=AuditAction.STATUS_CHANGED.value,
                previous_status=MembershipStatus.ACTIVE.value,
                new_status=MembershipStatus.EXPIRED.value,
                details="Expired without grace period",
            )
        )
        return True

    async def enter_trainer_grace(self, record: MembershipRecord) -> bool:
        if record.trainer_period_end is None:
            return False
        grace_end = self.trainer_policy.compute_grace_end(record.trainer_period_end)
        try:
            moved = await membership.start_trainer_grace(
                self.db, id=record.id, trainer_grace_period_end=grace_end
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to start trainer grace for membership {record.id}: {str(e)}")
            return False
        if not moved:
            return False

        logger.info(f"Membership {record.id} trainer access in grace until {grace_end.isoformat()}")
        days = self.trainer_policy.grace_days
        rows = [
            NotificationCreate(
                recipient_id=record.user_id,
                type=NotificationType.TRAINER_GRACE_PERIOD_STARTED.value,
                content=(
                    f"Your trainer access period has ended. Renew within {days} days to keep your trainer."
                ),
                metadata={"membership_id": record.id, "trainer_grace_period_end": grace_end.isoformat()},
            ),
            NotificationCreate(
                type=NotificationType.TRAINER_GRACE_PERIOD_STARTED.value,
                content=f"User's trainer period ended, {days}-day trainer grace period started.",
                reference_id=str(record.id),
            ),
        ]
        trainer_user = await trainer_user_id(self.db, record.trainer_id)
        if trainer_user:
            rows.append(
                NotificationCreate(
                    recipient_id=trainer_user,
                    type=NotificationType.TRAINER_GRACE_PERIOD_STARTED.value,
                    content="Your client's trainer access period has ended and is in its grace period.",
                    metadata={"membership_id": record.id},
                )
            )
        await self._notify(rows)
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=record.id,
                action=AuditAction.TRAINER_GRACE_PERIOD_STARTED.value,
                details=f"Trainer grace period ends {grace_end.isoformat()}",
                metadata={"trainer_id": record.trainer_id, "trainer_grace_period_end": grace_end.isoformat()},
            )
        )
        return True

    async def revoke_trainer(self, record: MembershipRecord) -> bool:
        """Clear the trainer sub-state and expire its assignments once trainer grace is over."""
        try:
            moved = await membership.revoke_trainer(self.db, id=record.id, now=self.clock.now(), commit=False)
            if not moved:
                await self.db.rollback()
                return False
            await assignment.expire_assigned(self.db, membership_id=record.id, commit=False)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to revoke trainer access for membership {record.id}: {str(e)}")
            return False

        logger.info(f"Membership {record.id} trainer access revoked")
        rows = [
            NotificationCreate(
                recipient_id=record.user_id,
                type=NotificationType.TRAINER_PERIOD_EXPIRED.value,
                content="Your trainer access period has expired. Please renew your trainer access.",
                metadata={"membership_id": record.id},
            ),
            NotificationCreate(
                type=NotificationType.TRAINER_PERIOD_EXPIRED.value,
                content="User's trainer period has expired.",
                reference_id=str(record.id),
            ),
        ]
        trainer_user = await trainer_user_id(self.db, record.trainer_id)
        if trainer_user:
            rows.append(
                NotificationCreate(
                    recipient_id=trainer_user,
                    type=NotificationType.CLIENT_TRAINER_PERIOD_EXPIRED.value,
                    content="Client's trainer access period has expired.",
                    metadata={"membership_id": record.id},
                )
            )
        await self._notify(rows)
        await self.audit.log_event(
            AuditLogEntry(
                membership_id=record.id,
                action=AuditAction.TRAINER_GRACE_PERIOD_EXPIRED.value,
                details="Trainer access revoked after trainer grace period",
                metadata={"trainer_id": record.trainer_id},
            )
        )
        return True
