import os

os.environ.setdefault("ENV_FILE", "/nonexistent/.env")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "service-key")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from gym_lifecycle.core.clock import BusinessClock  # noqa: E402
from gym_lifecycle.models import (  # noqa: E402
    Base,
    Membership,
    MembershipAddon,
    MembershipPayment,
    Trainer,
    TrainerAssignment,
)
from gym_lifecycle.schemas.email import UserProfile  # noqa: E402
from gym_lifecycle.services.email_service import EmailDeliveryError, EmailDispatcher  # noqa: E402

# 12:00 IST on 10 March 2026; the business day started at 2026-03-09 18:30 UTC
NOW = datetime(2026, 3, 10, 6, 30)
DAY_START = datetime(2026, 3, 9, 18, 30)


class FakeTransport:
    """Records sends; ``failures`` are raised in order before sends start succeeding."""

    def __init__(self, failures=None, configured=True):
        self.failures = list(failures or [])
        self.configured = configured
        self.sent = []

    def send(self, to, subject, html):
        if self.failures:
            raise self.failures.pop(0)
        self.sent.append((to, subject))
        return f"email-{len(self.sent)}"


class FakeDirectory:
    def __init__(self, missing=()):
        self.missing = set(missing)

    async def get_profile(self, user_id):
        if user_id in self.missing:
            return None
        return UserProfile(full_name="Asha", email=f"{user_id}@example.com")


async def no_sleep(delay):
    return None


def transient_error():
    return EmailDeliveryError("Service unavailable", status_code=503)


def permanent_error():
    return EmailDeliveryError("Invalid recipient", status_code=422)


@pytest.fixture
def clock():
    return BusinessClock(offset_minutes=330, now_fn=lambda: NOW.replace(tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def emails(db, clock, transport):
    return EmailDispatcher(db, clock=clock, transport=transport, directory=FakeDirectory(), sleep=no_sleep)


async def fetch_all(db, model, *conditions):
    """Fresh rows from the database, bypassing stale identity-map state."""
    stmt = select(model).where(*conditions).order_by(model.id).execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def _add(db, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


@pytest.fixture
def make_membership(db):
    async def factory(**kwargs):
        values = {
            "user_id": "user-1",
            "plan_name": "Premium Quarterly",
            "plan_type": "in_gym",
            "duration_months": 3,
            "price": 650,
            "status": "active",
            "membership_start_date": NOW - timedelta(days=60),
            "membership_end_date": NOW + timedelta(days=30),
            "created_at": NOW - timedelta(days=60),
        }
        values.update(kwargs)
        return await _add(db, Membership(**values))

    return factory


@pytest.fixture
def make_trainer(db):
    async def factory(**kwargs):
        values = {"name": "Ravi", "user_id": "trainer-user-1", "price": 3000}
        values.update(kwargs)
        return await _add(db, Trainer(**values))

    return factory


@pytest.fixture
def make_payment(db):
    async def factory(membership_id, **kwargs):
        values = {"membership_id": membership_id, "amount": 650, "status": "verified", "created_at": NOW}
        values.update(kwargs)
        return await _add(db, MembershipPayment(**values))

    return factory


@pytest.fixture
def make_addon(db):
    async def factory(membership_id, **kwargs):
        values = {
            "membership_id": membership_id,
            "addon_type": "personal_trainer",
            "status": "pending",
            "price": 3000,
            "created_at": NOW,
        }
        values.update(kwargs)
        return await _add(db, MembershipAddon(**values))

    return factory


@pytest.fixture
def make_assignment(db):
    async def factory(membership_id, **kwargs):
        values = {
            "membership_id": membership_id,
            "assignment_type": "addon",
            "status": "pending",
            "created_at": NOW,
        }
        values.update(kwargs)
        return await _add(db, TrainerAssignment(**values))

    return factory
