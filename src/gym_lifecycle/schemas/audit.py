from typing import Any, Dict, Optional

from pydantic import Field

from .base import BaseSchema


class AuditLogEntry(BaseSchema):
    membership_id: int
    action: str
    admin_id: Optional[str] = None
    admin_email: Optional[str] = None
    previous_status: Optional[str] = None
    new_status: Optional[str] = None
    details: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
