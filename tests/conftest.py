"""
Shared test fixtures for the Teamdesk test suite.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool)
wired into the app through the ``get_db`` dependency override.
"""

import os
import sys
import tempfile
from typing import AsyncGenerator, Awaitable, Callable

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["STORAGE_DIR"] = tempfile.mkdtemp(prefix="teamdesk-storage-")
os.environ["SECRET_KEY"] = "test-secret-key-for-the-test-suite-only"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.deps import get_db
from app.api.v1.endpoints.auth import limiter
from app.core.security import create_access_token
from app.db.base import Base
from app.db.realtime import ChangeFeed
from app.db.store import DataStore
from app.main import app
from app.models.profile import ROLE_ADMIN, ROLE_COLLABORATOR, ROLE_MEMBER, Profile
from app.services.identity import IdentityService

limiter.enabled = False


class _TestDatabase:
    sessionmaker: async_sessionmaker | None = None


_db = _TestDatabase()


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create a fresh database per test and drop it afterwards."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    _db.sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield

    _db.sessionmaker = None
    await engine.dispose()


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with _db.sessionmaker() as session:
        yield session


app.dependency_overrides[get_db] = _override_get_db


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with _db.sessionmaker() as session:
        yield session


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def store(db_session: AsyncSession, feed: ChangeFeed) -> DataStore:
    return DataStore(db_session, feed)


# ── Users ───────────────────────────────────────────────────────────
MakeUser = Callable[..., Awaitable[Profile]]


@pytest.fixture
def make_user(store: DataStore) -> MakeUser:
    """Sign up a user and give them *role*."""
    identity = IdentityService(store)
    counter = {"n": 0}

    async def _make(role: str = ROLE_MEMBER, name: str | None = None) -> Profile:
        counter["n"] += 1
        n = counter["n"]
        profile = await identity.sign_up(
            f"user{n}@example.com", "secret123", name or f"User {n}"
        )
        if role != ROLE_MEMBER:
            (profile,) = await store.update("profiles", {"role": role}, {"id": profile.id})
        return profile

    return _make


def _auth_headers(profile: Profile) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(profile.id)}"}


@pytest.fixture
def auth() -> Callable[[Profile], dict[str, str]]:
    """Bearer headers for a profile."""
    return _auth_headers


@pytest.fixture
async def admin(make_user: MakeUser) -> Profile:
    return await make_user(ROLE_ADMIN, "Ada Admin")


@pytest.fixture
async def collaborator(make_user: MakeUser) -> Profile:
    return await make_user(ROLE_COLLABORATOR, "Cole Collaborator")


@pytest.fixture
async def member(make_user: MakeUser) -> Profile:
    return await make_user(ROLE_MEMBER, "Mia Member")
