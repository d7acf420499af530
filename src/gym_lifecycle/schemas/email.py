from typing import Optional

from .base import BaseSchema


class EmailResult(BaseSchema):
    """Outcome of one template send.

    ``skipped`` is set when the idempotency ledger already had the event, in
    which case the send counts as a success without anything being delivered.
    """
    success: bool
    error: Optional[str] = None
    email_id: Optional[str] = None
    skipped: bool = False
    attempts: int = 0


class UserProfile(BaseSchema):
    full_name: str
    email: str
