"""
Reminder notifications and same-day emails for the expiry job.

Milestones are counted from the business-day start, so a given milestone
matches on exactly one calendar day. Each notification carries a
``reference_key`` built from the entity, the date it counts towards and the
milestone, and is skipped when that key was already emitted.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.schemas.enums import NotificationType
from gym_lifecycle.schemas.expiry import EmailCounts
from gym_lifecycle.schemas.membership import MembershipRecord
from gym_lifecycle.schemas.notification import NotificationCreate
from gym_lifecycle.services.email_service import EmailDispatcher
from gym_lifecycle.services.grace_period import GracePolicy, membership_grace, trainer_grace
from gym_lifecycle.services.lifecycle_engine import trainer_user_id
from gym_lifecycle.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


def reference_key(kind: str, membership_id: int, anchor: datetime, suffix: str = "") -> str:
    key = f"{kind}:{membership_id}:{anchor:%Y%m%d}"
    return f"{key}:{suffix}" if suffix else key


def _plural(n: int) -> str:
    return "day" if n == 1 else "days"


class MilestoneNotifier:
    def __init__(
        self,
        db: AsyncSession,
        clock: BusinessClock,
        notifications: NotificationService,
        emails: EmailDispatcher,
        email_counts: Optional[EmailCounts] = None,
        membership_policy: GracePolicy = membership_grace,
        trainer_policy: GracePolicy = trainer_grace,
    ):
        self.db = db
        self.clock = clock
        self.notifications = notifications
        self.emails = emails
        self.email_counts = email_counts if email_counts is not None else EmailCounts()
        self.membership_policy = membership_policy
        self.trainer_policy = trainer_policy
        self.notifications_created = 0

    async def _notify_once(self, rows: List[NotificationCreate]) -> int:
        created = await self.notifications.notify_once(rows)
        self.notifications_created += created
        return created

    # In-app notifications

    async def membership_milestones(self, records: List[MembershipRecord]) -> int:
        """Grace-period reminders at the membership milestones. Returns memberships notified."""
        day_start = self.clock.business_day_start()
        fired = 0
        for record in records:
            for milestone in self.membership_policy.milestones(record.grace_period_end, day_start):
                n = milestone.days_remaining
                key = reference_key("membership_grace", record.id, record.grace_period_end, f"{n}d")
                created = await self._notify_once(
                    [
                        NotificationCreate(
                            recipient_id=record.user_id,
                            type=NotificationType.MEMBERSHIP_GRACE_PERIOD_REMINDER.value,
                            content=(
                                f"Your {record.plan_name} membership grace period ends in {n} {_plural(n)}. "
                                f"Renew now to keep your membership."
                            ),
                            reference_key=key,
                            metadata={"membership_id": record.id, "days_remaining": n},
                        ),
                        NotificationCreate(
                            type=NotificationType.MEMBERSHIP_GRACE_PERIOD_REMINDER.value,
                            content=f"User's {record.plan_name} membership grace period ends in {n} {_plural(n)}.",
                            reference_id=str(record.id),
                            reference_key=f"{key}:admin",
                        ),
                    ]
                )
                if created:
                    fired += 1
        return fired

    async def trainer_milestones(self, records: List[MembershipRecord]) -> int:
        day_start = self.clock.business_day_start()
        fired = 0
        for record in records:
            for milestone in self.trainer_policy.milestones(record.trainer_grace_period_end, day_start):
                n = milestone.days_remaining
                key = reference_key("trainer_grace", record.id, record.trainer_grace_period_end, f"{n}d")
                rows = [
                    NotificationCreate(
                        recipient_id=record.user_id,
                        type=NotificationType.TRAINER_GRACE_PERIOD_REMINDER.value,
                        content=(
                            f"Your trainer access grace period ends in {n} {_plural(n)}. "
                            f"Renew to keep your trainer."
                        ),
                        reference_key=key,
                        metadata={"membership_id": record.id, "days_remaining": n},
                    )
                ]
                trainer_user = await trainer_user_id(self.db, record.trainer_id)
                if trainer_user:
                    rows.append(
                        NotificationCreate(
                            recipient_id=trainer_user,
                            type=NotificationType.TRAINER_GRACE_PERIOD_REMINDER.value,
                            content=f"Your client's trainer grace period ends in {n} {_plural(n)}.",
                            reference_key=f"{key}:trainer",
                            metadata={"membership_id": record.id, "days_remaining": n},
                        )
                    )
                if await self._notify_once(rows):
                    fired += 1
        return fired

    async def expiring_window(self, records: List[MembershipRecord]) -> int:
        """Pre-expiry notifications, once per membership end date."""
        created = 0
        for record in records:
            if record.end_date is None:
                continue
            key = reference_key("membership_expiring", record.id, record.end_date)
            created += await self._notify_once(
                [
                    NotificationCreate(
                        recipient_id=record.user_id,
                        type=NotificationType.MEMBERSHIP_EXPIRING.value,
                        content=f"Your {record.plan_name} membership will expire soon. Please renew.",
                        reference_key=key,
                        metadata={"membership_id": record.id, "end_date": record.end_date.isoformat()},
                    ),
                    NotificationCreate(
                        type=NotificationType.MEMBERSHIP_EXPIRING.value,
                        content=f"User's {record.plan_name} membership is ending soon.",
                        reference_id=str(record.id),
                        reference_key=f"{key}:admin",
                    ),
                ]
            )
        return created

    async def trainer_expiring_window(self, records: List[MembershipRecord]) -> int:
        created = 0
        for record in records:
            if record.trainer_period_end is None:
                continue
            key = reference_key("trainer_expiring", record.id, record.trainer_period_end)
            rows = [
                NotificationCreate(
                    recipient_id=record.user_id,
                    type=NotificationType.TRAINER_PERIOD_EXPIRING.value,
                    content="Your trainer access period will expire soon. Please renew.",
                    reference_key=key,
                    metadata={"membership_id": record.id},
                ),
                NotificationCreate(
                    type=NotificationType.TRAINER_PERIOD_EXPIRING.value,
                    content="User's trainer period is ending soon.",
                    reference_id=str(record.id),
                    reference_key=f"{key}:admin",
                ),
            ]
            trainer_user = await trainer_user_id(self.db, record.trainer_id)
            if trainer_user:
                rows.append(
                    NotificationCreate(
                        recipient_id=trainer_user,
                        type=NotificationType.CLIENT_TRAINER_PERIOD_EXPIRING.value,
                        content="Your client's trainer access period is expiring soon.",
                        reference_key=f"{key}:trainer",
                        metadata={"membership_id": record.id},
                    )
                )
            created += await self._notify_once(rows)
        return created

    # Same-day emails

    async def _email_each(self, records: List[MembershipRecord], field: str, send) -> None:
        for record in records:
            try:
                result = await send(record)
            except Exception as e:
                self.email_counts.failed += 1
                logger.error(f"{field} email failed for membership {record.id}: {str(e)}")
                continue
            self.email_counts.tally(field, result)
            if not result.success:
                logger.warning(f"{field} email not delivered for membership {record.id}: {result.error}")

    async def reminder_emails(self, records: List[MembershipRecord]) -> None:
        await self._email_each(
            [r for r in records if r.end_date is not None],
            "expiry_reminder",
            lambda r: self.emails.send_plan_expiry_reminder(r.user_id, r.id, r.plan_name, r.end_date),
        )

    async def expiry_day_emails(self, records: List[MembershipRecord]) -> None:
        await self._email_each(
            [r for r in records if r.end_date is not None],
            "expiry_day",
            lambda r: self.emails.send_plan_expiry_day(r.user_id, r.id, r.plan_name, r.end_date),
        )

    async def grace_end_emails(self, records: List[MembershipRecord]) -> None:
        await self._email_each(
            [r for r in records if r.grace_period_end is not None],
            "grace_period_end",
            lambda r: self.emails.send_grace_period_end(r.user_id, r.id, r.plan_name, r.grace_period_end),
        )
