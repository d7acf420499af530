import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from gym_lifecycle.api.auth_deps import CurrentAdmin, require_configuration
from gym_lifecycle.db.session import SessionDep
from gym_lifecycle.schemas.reconciliation import PaymentHistoryResponse
from gym_lifecycle.schemas.renewal import (
    RejectTrainerRenewalRequest,
    TrainerRenewalRejectionResponse,
    TrainerRenewalResponse,
)
from gym_lifecycle.services.payment_reconciler import PaymentReconciler
from gym_lifecycle.services.trainer_renewal import TrainerRenewalService

router = APIRouter(dependencies=[Depends(require_configuration)])
logger = logging.getLogger(__name__)


@router.post("/{membership_id}/approve-trainer-renewal", response_model=TrainerRenewalResponse)
async def approve_trainer_renewal(
    membership_id: int,
    db: SessionDep,
    admin: CurrentAdmin,
) -> TrainerRenewalResponse:
    """Verify the pending trainer renewal payment and extend trainer access."""
    return await TrainerRenewalService(db).approve(membership_id, admin)


@router.post("/{membership_id}/reject-trainer-renewal", response_model=TrainerRenewalRejectionResponse)
async def reject_trainer_renewal(
    membership_id: int,
    db: SessionDep,
    admin: CurrentAdmin,
    request: Optional[RejectTrainerRenewalRequest] = Body(default=None),
) -> TrainerRenewalRejectionResponse:
    reason = request.reason if request else None
    return await TrainerRenewalService(db).reject(membership_id, admin, reason)


@router.get("/{membership_id}/payments/classification", response_model=PaymentHistoryResponse)
async def classify_payments(
    membership_id: int,
    db: SessionDep,
    admin: CurrentAdmin,
) -> PaymentHistoryResponse:
    """What each payment of the membership paid for, newest first."""
    history = await PaymentReconciler(db).history(membership_id)
    if history is None:
        raise HTTPException(status_code=404, detail="Membership not found")
    return history
