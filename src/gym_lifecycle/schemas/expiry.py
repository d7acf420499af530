from pydantic import Field

from .base import BaseSchema


class EmailCounts(BaseSchema):
    """Emails actually delivered in this run, per template."""
    expiry_reminder: int = 0
    expiry_day: int = 0
    grace_period_start: int = 0
    grace_period_end: int = 0
    failed: int = 0

    def tally(self, field: str, result) -> None:
        """Count a send result; ledger skips are neither sent nor failed."""
        if result is None or result.skipped:
            return
        if result.success:
            setattr(self, field, getattr(self, field) + 1)
        else:
            self.failed += 1


class ExpiryCheckResponse(BaseSchema):
    """Per-category counts of one expiry job run, for operational visibility."""
    success: bool = True
    notification_window_days: int
    expiring_memberships: int = 0
    expiring_trainer_periods: int = 0
    memberships_to_grace: int = 0
    memberships_terminated: int = 0
    legacy_memberships_expired: int = 0
    trainers_to_grace: int = 0
    trainers_revoked: int = 0
    grace_milestone_notifications: int = 0
    trainer_grace_milestone_notifications: int = 0
    notifications_created: int = 0
    emails: EmailCounts = Field(default_factory=EmailCounts)
    idempotency_fail_open: int = 0

    @property
    def mutation_count(self) -> int:
        return (
            self.memberships_to_grace
            + self.memberships_terminated
            + self.legacy_memberships_expired
            + self.trainers_to_grace
            + self.trainers_revoked
        )
