from fastapi import APIRouter

from gym_lifecycle.api.api_v1.endpoints import expiries, memberships

api_router = APIRouter()
api_router.include_router(expiries.router, prefix="/admin", tags=["expiries"])
api_router.include_router(memberships.router, prefix="/admin/memberships", tags=["memberships"])
