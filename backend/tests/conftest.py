"""Shared fixtures for Family Panel backend tests.

Uses SQLite (aiosqlite) by default, no PostgreSQL required.
Set TEST_DATABASE_URL to override (e.g. for CI with real PostgreSQL).
"""

import os
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")

# Ensure settings can be loaded without .env
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unit-tests")
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)

from familypanel.core.security import get_password_hash  # noqa: E402
from familypanel.database import Base  # noqa: E402

PARENT_PASSWORD = "testpassword123"
KID_PIN = "1234"


# ---------------------------------------------------------------------------
# Reset rate-limiter counters before every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Clear rate-limit counters so tests never block each other."""
    from familypanel.core.rate_limit import limiter

    limiter.reset()


# ---------------------------------------------------------------------------
# Per-test database: fresh schema on an in-memory engine
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def db_session():
    import familypanel.models  # noqa: F401 - populate Base.metadata

    engine_kwargs = {}
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine_kwargs = {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, **engine_kwargs)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False,
    )
    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# ---------------------------------------------------------------------------
# HTTP test client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def client(db_session: AsyncSession):
    from familypanel.database import get_db
    from familypanel.main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_user(db_session: AsyncSession):
    """Factory inserting a user row directly. Returns the ORM instance."""
    from familypanel.models.user import User

    async def _make(
        role: str,
        name: str = "Test User",
        email: str | None = None,
        password: str | None = None,
        pin: str | None = None,
    ):
        user = User(
            email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.com",
            name=name,
            role=role,
            password_hash=get_password_hash(password) if password else None,
            pin_hash=get_password_hash(pin) if pin else None,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest_asyncio.fixture()
async def parent(client: AsyncClient, make_user):
    """A parent with a password, already signed in.

    Keys: user, headers, session
    """
    user = await make_user("parent", name="John Parent", password=PARENT_PASSWORD)
    resp = await client.post("/api/v1/auth/login", json={
        "email": user.email,
        "password": PARENT_PASSWORD,
    })
    assert resp.status_code == 200, resp.text
    session = resp.json()
    return {
        "user": user,
        "headers": {"Authorization": f"Bearer {session['access_token']}"},
        "session": session,
    }


@pytest_asyncio.fixture()
async def kid(make_user):
    """A kid with PIN ``1234``."""
    return await make_user("kid", name="Alice Kid", email="kid1@example.com", pin=KID_PIN)
