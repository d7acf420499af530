import asyncio
import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from supabase import Client, create_client

from gym_lifecycle.core.config import settings
from gym_lifecycle.crud.crud_admin import admin as admin_crud
from gym_lifecycle.schemas.renewal import AdminIdentity


class AuthService:
    """Verifies Supabase access tokens and resolves them to active admins."""

    def __init__(self, client: Optional[Client] = None):
        self._supabase = client
        self.logger = logging.getLogger(__name__)

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            self._supabase = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY or settings.SUPABASE_SERVICE_KEY)
        return self._supabase

    def verify_token(self, token: str) -> dict:
        """Verify a JWT token and return the auth user's id and email.

        Raises:
            HTTPException: If token is invalid or expired
        """
        try:
            self.logger.debug("Attempting to verify token")
            user = self.supabase.auth.get_user(token)

            if not user or not user.user or not user.user.email:
                self.logger.warning("Token verification failed: No valid user found")
                raise HTTPException(status_code=401, detail="Invalid token")

            return {"id": user.user.id, "email": user.user.email}

        except HTTPException:
            raise
        except Exception as e:
            error_str = str(e)
            self.logger.error(f"Token verification failed: {error_str}")
            if "token is expired" in error_str.lower():
                raise HTTPException(status_code=401, detail="Token has expired")
            raise HTTPException(status_code=401, detail="Invalid token")

    async def get_admin(self, token: str, db: AsyncSession) -> AdminIdentity:
        """Resolve a token to an active admin.

        Raises:
            HTTPException: 401 for a bad token, 403 when the user is not an active admin
        """
        user_info = await asyncio.to_thread(self.verify_token, token)
        row = await admin_crud.get_active_by_email(db, email=user_info["email"])
        if row is None:
            self.logger.warning(f"Authenticated user {user_info['email']} is not an active admin")
            raise HTTPException(status_code=403, detail="Admin access required")

        self.logger.info(f"Admin verified: {row.email}")
        return AdminIdentity(email=row.email, auth_user_id=row.auth_user_id or user_info["id"], name=row.name)
