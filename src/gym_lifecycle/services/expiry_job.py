"""
The periodic expiry job.

Runs every scan category in a fixed order and hands each candidate set to the
transition engine or the milestone notifier. Categories are scanned right
before they are processed, so earlier steps shape what later steps see:
legacy memberships are expired before the grace scan, and a membership moved
into grace in this run is no longer picked up as ``active``.
"""
import logging
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.crud.crud_settings import admin_setting
from gym_lifecycle.schemas.expiry import EmailCounts, ExpiryCheckResponse
from gym_lifecycle.schemas.membership import MembershipRecord
from gym_lifecycle.services.audit_log import AuditLogService
from gym_lifecycle.services.email_service import EmailDispatcher
from gym_lifecycle.services.expiry_scanner import ExpiryScanner
from gym_lifecycle.services.lifecycle_engine import LifecycleTransitionEngine
from gym_lifecycle.services.milestone_notifier import MilestoneNotifier
from gym_lifecycle.services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class ExpiryJob:
    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[BusinessClock] = None,
        emails: Optional[EmailDispatcher] = None,
        notifications: Optional[NotificationService] = None,
        audit: Optional[AuditLogService] = None,
    ):
        self.db = db
        self.clock = clock or BusinessClock()
        self.emails = emails or EmailDispatcher(db, clock=self.clock)
        self.notifications = notifications or NotificationService(db)
        self.audit = audit or AuditLogService(db)
        self.email_counts = EmailCounts()
        self.scanner = ExpiryScanner(db, self.clock)
        self.engine = LifecycleTransitionEngine(
            db, self.clock, self.notifications, self.emails, self.audit, email_counts=self.email_counts
        )
        self.notifier = MilestoneNotifier(
            db, self.clock, self.notifications, self.emails, email_counts=self.email_counts
        )

    @staticmethod
    async def _apply(records: List[MembershipRecord], transition: Callable[[MembershipRecord], Awaitable[bool]]) -> int:
        moved = 0
        for record in records:
            if await transition(record):
                moved += 1
        return moved

    async def run(self) -> ExpiryCheckResponse:
        window_days = await admin_setting.expiry_notification_days(self.db)
        logger.info(f"Expiry check started (notification window {window_days} days)")

        expiring = await self.scanner.expiring_memberships(window_days)
        await self.notifier.expiring_window(expiring)

        expiring_trainers = await self.scanner.expiring_trainer_periods(window_days)
        await self.notifier.trainer_expiring_window(expiring_trainers)

        await self.notifier.reminder_emails(await self.scanner.reminder_memberships())
        await self.notifier.expiry_day_emails(await self.scanner.expiring_today_memberships())

        legacy_expired = await self._apply(await self.scanner.legacy_expired_memberships(), self.engine.expire_legacy)
        to_grace = await self._apply(await self.scanner.grace_eligible_memberships(), self.engine.enter_grace)

        grace_milestones = await self.notifier.membership_milestones(await self.scanner.grace_milestone_memberships())
        await self.notifier.grace_end_emails(await self.scanner.grace_ending_today_memberships())
        terminated = await self._apply(await self.scanner.grace_expired_memberships(), self.engine.terminate)

        trainers_to_grace = await self._apply(await self.scanner.trainer_grace_eligible(), self.engine.enter_trainer_grace)
        trainer_milestones = await self.notifier.trainer_milestones(
            await self.scanner.trainer_grace_milestone_candidates()
        )
        trainers_revoked = await self._apply(await self.scanner.trainer_grace_expired(), self.engine.revoke_trainer)

        response = ExpiryCheckResponse(
            notification_window_days=window_days,
            expiring_memberships=len(expiring),
            expiring_trainer_periods=len(expiring_trainers),
            memberships_to_grace=to_grace,
            memberships_terminated=terminated,
            legacy_memberships_expired=legacy_expired,
            trainers_to_grace=trainers_to_grace,
            trainers_revoked=trainers_revoked,
            grace_milestone_notifications=grace_milestones,
            trainer_grace_milestone_notifications=trainer_milestones,
            notifications_created=self.engine.notifications_created + self.notifier.notifications_created,
            emails=self.email_counts,
            idempotency_fail_open=self.emails.fail_open_count,
        )
        logger.info(f"Expiry check finished: {response.model_dump()}")
        return response
