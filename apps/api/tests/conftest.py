"""
Shared fixtures for the Brevet API tests.

The application's engine is created when brevet.core.database is imported,
so the environment is pointed at SQLite before any brevet import.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PYTHON_ENV", "test")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("VERIFICATION_TOKEN_SECRET", "test-verification-secret")

from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from brevet.core.database import Base  # noqa: E402
from brevet.core.revocation import RevocationStore  # noqa: E402
from brevet.core.security import (  # noqa: E402
    CredentialCodec,
    CredentialCodecs,
    CredentialKind,
    hash_password,
)
from brevet.modules.purchases import models as _purchase_models  # noqa: E402,F401
from brevet.modules.quizzes import models as _quiz_models  # noqa: E402,F401
from brevet.modules.sessions import models as _session_models  # noqa: E402,F401
from brevet.modules.users.models import User, UserRole  # noqa: E402
from brevet.modules.users.repository import UserRepository  # noqa: E402

TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture
def now():
    """A fixed reference time for job firings."""
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    """A database session for arranging and asserting test data."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.ping = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def revocations(mock_redis):
    """Revocation store over the mock Redis client."""
    return RevocationStore(mock_redis, max_ttl_seconds=86400)


@pytest.fixture
def codecs():
    """Credential codecs with distinct test secrets."""
    return CredentialCodecs(
        access=CredentialCodec(CredentialKind.ACCESS, "test-access-secret", timedelta(hours=24)),
        refresh=CredentialCodec(
            CredentialKind.REFRESH, "test-refresh-secret", timedelta(hours=24)
        ),
        verification=CredentialCodec(
            CredentialKind.VERIFICATION, "test-verification-secret", timedelta(minutes=15)
        ),
    )


@pytest.fixture
def failing_session_maker():
    """Session factory whose sessions fail on every query."""
    session = AsyncMock()
    session.execute = AsyncMock(side_effect=ConnectionError("database unreachable"))
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context)


@pytest_asyncio.fixture
async def make_user(db):
    """Factory creating users in the test database."""

    async def _make_user(
        email: str | None = None,
        role: UserRole = UserRole.STUDENT,
        is_active: bool = True,
        is_verified: bool = True,
        password: str = TEST_PASSWORD,
    ) -> User:
        user = await UserRepository.create(
            db,
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            name="Test User",
            role=role,
            is_active=is_active,
            is_verified=is_verified,
        )
        await db.commit()
        return user

    return _make_user
