"""Authentication dependencies for FastAPI endpoints."""
import logging
from typing import Annotated, Optional

from fastapi import Cookie, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gym_lifecycle.core.config import settings
from gym_lifecycle.core.exceptions import ConfigurationError
from gym_lifecycle.db.session import SessionDep
from gym_lifecycle.schemas.renewal import AdminIdentity
from gym_lifecycle.services.auth_service import AuthService

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)

auth_service = AuthService()


def require_configuration() -> None:
    """Fail the request before any work when required secrets are missing."""
    missing = settings.missing_required()
    if missing:
        raise ConfigurationError(missing)


async def get_optional_admin(
    db: SessionDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[AdminIdentity]:
    """Scheduler calls come without a token; a token that is sent must belong to an admin."""
    if credentials is None:
        return None
    return await auth_service.get_admin(credentials.credentials, db)


async def get_current_admin(
    db: SessionDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    admin_token: Optional[str] = Cookie(default=None),
) -> AdminIdentity:
    """Admin from the portal session cookie or a bearer token."""
    token = admin_token or (credentials.credentials if credentials else None)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return await auth_service.get_admin(token, db)


# Type aliases for dependencies
OptionalAdmin = Annotated[Optional[AdminIdentity], Depends(get_optional_admin)]
CurrentAdmin = Annotated[AdminIdentity, Depends(get_current_admin)]
