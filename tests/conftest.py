"""
Global test fixtures and configuration.

This module provides base fixtures for all tests:
- Database session on a fresh in-memory SQLite database per test
- HTTP client with dependency overrides
- Base data fixtures (user, auth_headers, team)
"""

import os
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables BEFORE importing app
os.environ["MODE"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SENTRY_DSN"] = ""

from app.main import app  # noqa: E402
from app.api.dependencies import get_db  # noqa: E402
from app.core.security import create_session_token  # noqa: E402
from app.db.base import Base  # noqa: E402

TEST_DATABASE_URL = os.environ["DATABASE_URL"]


# ==================== Database ====================

@pytest.fixture(scope="function")
async def test_engine():
    """
    In-memory database engine, one per test.

    StaticPool keeps the single connection alive so every session sees
    the same database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False  # Set to True for SQL debugging
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Session shared by the test body and the application.

    The database is discarded with the engine, so no cleanup is needed.
    """
    session_factory = sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


# ==================== FastAPI Client ====================

@pytest.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create HTTP client for testing FastAPI endpoints.

    Overrides get_db to use the test session.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Base Data Fixtures ====================

@pytest.fixture
async def user(db_session: AsyncSession):
    """Create a test user. Password: Password123!"""
    from tests.factories import UserFactory

    user = await UserFactory.create_async(db_session, name="Test User", email="user@test.com")
    await db_session.commit()
    return user


@pytest.fixture
async def other_user(db_session: AsyncSession):
    from tests.factories import UserFactory

    user = await UserFactory.create_async(db_session, name="Other User", email="other@test.com")
    await db_session.commit()
    return user


@pytest.fixture
async def auth_headers(user):
    """
    Generate authentication headers for authenticated requests.

    Creates a valid session token for the user.
    """
    return {"Authorization": f"Bearer {create_session_token(user)}"}


@pytest.fixture
async def other_auth_headers(other_user):
    return {"Authorization": f"Bearer {create_session_token(other_user)}"}


@pytest.fixture
async def team(db_session: AsyncSession, user):
    """
    Create a team owned by user.
    """
    from tests.factories import TeamFactory

    team = await TeamFactory.create_with_owner_async(db_session, owner=user, name="Core Team")
    await db_session.commit()
    return team


@pytest.fixture
def make_headers():
    """Build auth headers for any user record."""
    def _make(user):
        return {"Authorization": f"Bearer {create_session_token(user)}"}
    return _make
