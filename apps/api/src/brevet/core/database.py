"""
Database Configuration

Async SQLAlchemy engine, session factory and declarative base.
The store is shared by request handlers and background jobs, so every
connection carries connect/command timeouts.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from brevet.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def create_engine_from_url(
    database_url: str,
    connect_timeout: float | None = None,
    command_timeout: float | None = None,
) -> AsyncEngine:
    """
    Create an async engine with driver-appropriate timeouts.

    asyncpg accepts ``timeout`` (connect) and ``command_timeout`` (per
    statement); other drivers are created without them.
    """
    engine_kwargs: dict[str, Any] = {"echo": False}

    if database_url.startswith("postgresql+asyncpg"):
        connect_args: dict[str, Any] = {}
        if connect_timeout is not None:
            connect_args["timeout"] = connect_timeout
        if command_timeout is not None:
            connect_args["command_timeout"] = command_timeout
        engine_kwargs["connect_args"] = connect_args
        engine_kwargs["pool_pre_ping"] = True
        if connect_timeout is not None:
            engine_kwargs["pool_timeout"] = connect_timeout

    return create_async_engine(database_url, **engine_kwargs)


engine = create_engine_from_url(
    settings.database_url,
    connect_timeout=settings.database_connect_timeout_seconds,
    command_timeout=settings.database_command_timeout_seconds,
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a database session.

    The session is rolled back if the request handler raises.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verify database connectivity.

    Call this on application startup.
    """
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
