import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.core import AuditLog
from gym_lifecycle.schemas.audit import AuditLogEntry

logger = logging.getLogger(__name__)

audit_log = CRUDBase(AuditLog)


class AuditLogService:
    """Writes the membership audit trail to the log and to ``audit_logs``."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_event(self, entry: AuditLogEntry) -> None:
        """Record an audit entry. Never raises."""
        logger.info(f"[AUDIT] {json.dumps(entry.model_dump(), default=str)}")
        try:
            data = entry.model_dump(exclude={"metadata"})
            data["metadata_"] = entry.metadata or None
            await audit_log.create(self.db, obj_in=data)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to persist audit entry {entry.action} for membership {entry.membership_id}: {str(e)}")
