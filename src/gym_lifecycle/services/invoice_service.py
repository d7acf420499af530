import logging
import random
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gym_lifecycle.core.clock import BusinessClock
from gym_lifecycle.crud.base import CRUDBase
from gym_lifecycle.models.core import Invoice

logger = logging.getLogger(__name__)

invoice = CRUDBase(Invoice)


def generate_invoice_number(clock: BusinessClock) -> str:
    """``INV-<epoch millis>-<3 random digits>``."""
    now = clock.to_local(clock.now())
    return f"INV-{int(now.timestamp() * 1000)}-{random.randint(0, 999):03d}"


class InvoiceService:
    """Invoice bookkeeping for verified payments. Rendering the PDF happens elsewhere."""

    def __init__(self, db: AsyncSession, clock: Optional[BusinessClock] = None):
        self.db = db
        self.clock = clock or BusinessClock()

    async def get_for_payment(self, payment_id: int) -> Optional[Invoice]:
        stmt = select(Invoice).where(Invoice.payment_id == payment_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def generate_for_payment(
        self,
        *,
        payment_id: int,
        membership_id: int,
        user_id: str,
        amount: float,
        invoice_type: str,
    ) -> Optional[Invoice]:
        """Create the invoice row for a payment once; returns the existing row on repeat calls."""
        try:
            existing = await self.get_for_payment(payment_id)
            if existing:
                logger.info(f"Invoice {existing.invoice_number} already exists for payment {payment_id}")
                return existing
            created = await invoice.create(
                self.db,
                obj_in={
                    "invoice_number": generate_invoice_number(self.clock),
                    "payment_id": payment_id,
                    "membership_id": membership_id,
                    "user_id": user_id,
                    "invoice_type": invoice_type,
                    "amount": amount,
                },
            )
            logger.info(f"Generated invoice {created.invoice_number} for payment {payment_id}")
            return created
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Invoice generation failed for payment {payment_id}: {str(e)}")
            return None
