from typing import Iterable, List, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.core import AdminNotification, Notification
from gym_lifecycle.schemas.notification import NotificationCreate


class CRUDNotification(CRUDBase[Notification]):
    """Member and trainer notifications, plus their admin-portal counterpart."""

    async def existing_reference_keys(self, db: AsyncSession, *, keys: Iterable[str]) -> Set[str]:
        """Reference keys already used by either notification store."""
        keys = [k for k in keys if k]
        if not keys:
            return set()
        found: Set[str] = set()
        for model in (Notification, AdminNotification):
            stmt = select(model.reference_key).where(model.reference_key.in_(keys))
            result = await db.execute(stmt)
            found.update(result.scalars().all())
        return found

    async def create_bulk(self, db: AsyncSession, *, rows: List[NotificationCreate]) -> int:
        """Insert member rows into ``notifications`` and recipient-less rows into ``admin_notifications``."""
        for row in rows:
            if row.recipient_id is None:
                db.add(
                    AdminNotification(
                        notification_type=row.type,
                        content=row.content,
                        reference_id=row.reference_id,
                        actor_role=row.actor_role,
                        is_read=row.is_read,
                        reference_key=row.reference_key,
                    )
                )
            else:
                db.add(
                    Notification(
                        recipient_id=row.recipient_id,
                        actor_role=row.actor_role,
                        type=row.type,
                        content=row.content,
                        is_read=row.is_read,
                        reference_key=row.reference_key,
                        metadata_=row.metadata,
                    )
                )
        await db.commit()
        return len(rows)


notification = CRUDNotification(Notification)
