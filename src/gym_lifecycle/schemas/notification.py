from typing import Any, Dict, Optional

from .base import BaseSchema


class NotificationCreate(BaseSchema):
    """A notification row; ``recipient_id=None`` routes it to the admin store."""
    recipient_id: Optional[str] = None
    actor_role: str = "system"
    type: str
    content: str
    is_read: bool = False
    reference_id: Optional[str] = None
    reference_key: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
