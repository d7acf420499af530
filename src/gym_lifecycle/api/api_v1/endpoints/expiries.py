import logging

from fastapi import APIRouter, Depends

from gym_lifecycle.api.auth_deps import OptionalAdmin, require_configuration
from gym_lifecycle.db.session import SessionDep
from gym_lifecycle.schemas.expiry import ExpiryCheckResponse
from gym_lifecycle.services.expiry_job import ExpiryJob

router = APIRouter()
logger = logging.getLogger(__name__)


@router.api_route(
    "/check-expiries",
    methods=["GET", "POST"],
    response_model=ExpiryCheckResponse,
    dependencies=[Depends(require_configuration)],
)
async def check_expiries(db: SessionDep, admin: OptionalAdmin) -> ExpiryCheckResponse:
    """Run the membership expiry job once. Safe to call repeatedly."""
    caller = admin.email if admin else "scheduler"
    logger.info(f"Expiry check triggered by {caller}")
    result = await ExpiryJob(db).run()
    logger.info(f"Expiry check applied {result.mutation_count} state changes")
    return result
