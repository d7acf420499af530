import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

from gym_lifecycle.models import Admin
from gym_lifecycle.services.auth_service import AuthService


def supabase_returning(email, user_id="auth-1"):
    client = MagicMock()
    client.auth.get_user.return_value = SimpleNamespace(user=SimpleNamespace(id=user_id, email=email))
    return client


async def test_active_admin_is_resolved(db):
    db.add(Admin(email="Admin@Gym.test", name="Front Desk", auth_user_id="auth-1"))
    await db.commit()

    identity = await AuthService(client=supabase_returning("admin@gym.test")).get_admin("token", db)

    assert identity.email == "Admin@Gym.test"
    assert identity.auth_user_id == "auth-1"


async def test_non_admin_is_forbidden(db):
    db.add(Admin(email="old@gym.test", is_active=False))
    await db.commit()

    with pytest.raises(HTTPException) as exc:
        await AuthService(client=supabase_returning("old@gym.test")).get_admin("token", db)

    assert exc.value.status_code == 403


async def test_invalid_token(db):
    client = MagicMock()
    client.auth.get_user.side_effect = Exception("invalid JWT: token is expired")

    with pytest.raises(HTTPException) as exc:
        await AuthService(client=client).get_admin("token", db)

    assert exc.value.status_code == 401
    assert exc.value.detail == "Token has expired"


async def test_token_is_verified_off_the_event_loop(db):
    db.add(Admin(email="admin@gym.test", auth_user_id="auth-1"))
    await db.commit()
    threads = []
    client = supabase_returning("admin@gym.test")
    reply = client.auth.get_user.return_value

    def get_user(token):
        threads.append(threading.get_ident())
        return reply

    client.auth.get_user.side_effect = get_user

    await AuthService(client=client).get_admin("token", db)

    assert threads and threads[0] != threading.get_ident()
