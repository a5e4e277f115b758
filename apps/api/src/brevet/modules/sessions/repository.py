"""
Session Repository

Database operations for login sessions.

Design Principles:
- State transitions are single conditional statements; the predicate is
  repeated in the WHERE clause so a concurrent writer makes them a no-op
- Callers learn whether a transition happened from the returned flag
- Timezone-aware datetime handling (UTC)
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import UserSession


def _reapable(now: datetime):
    return or_(UserSession.expires_at <= now, UserSession.is_revoked.is_(True))


async def create(
    db: AsyncSession,
    *,
    user_id: UUID,
    refresh_token_hash: str,
    expires_at: datetime,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> UserSession:
    """Create a session. The caller commits."""
    session = UserSession(
        user_id=user_id,
        refresh_token_hash=refresh_token_hash,
        expires_at=expires_at,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.add(session)
    await db.flush()
    await db.refresh(session)
    return session


async def get_by_id(db: AsyncSession, id: UUID) -> UserSession | None:
    """Get session by ID."""
    return await db.get(UserSession, id)


async def get_live_by_refresh_hash(
    db: AsyncSession,
    refresh_token_hash: str,
    now: datetime,
) -> UserSession | None:
    """Get the live (unexpired, unrevoked) session for a refresh credential."""
    result = await db.execute(
        select(UserSession).where(
            UserSession.refresh_token_hash == refresh_token_hash,
            UserSession.is_revoked.is_(False),
            UserSession.expires_at > now,
        )
    )
    return result.scalar_one_or_none()


async def get_unrevoked_by_refresh_hash(
    db: AsyncSession,
    refresh_token_hash: str,
    user_id: UUID,
) -> UserSession | None:
    """Get the unrevoked session of ``user_id`` for a refresh credential."""
    result = await db.execute(
        select(UserSession).where(
            UserSession.refresh_token_hash == refresh_token_hash,
            UserSession.user_id == user_id,
            UserSession.is_revoked.is_(False),
        )
    )
    return result.scalar_one_or_none()


async def revoke_by_refresh_hash(
    db: AsyncSession,
    refresh_token_hash: str,
    user_id: UUID | None = None,
) -> bool:
    """
    Revoke the session owning a refresh credential.

    When ``user_id`` is given the session must also belong to that user.

    Returns:
        True if a live session was revoked, False if none matched or it was
        already revoked.
    """
    conditions = [
        UserSession.refresh_token_hash == refresh_token_hash,
        UserSession.is_revoked.is_(False),
    ]
    if user_id is not None:
        conditions.append(UserSession.user_id == user_id)

    result = await db.execute(
        update(UserSession)
        .where(*conditions)
        .values(is_revoked=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0


async def get_reapable_ids(db: AsyncSession, now: datetime) -> list[UUID]:
    """IDs of sessions that are expired or revoked as of ``now``."""
    result = await db.execute(select(UserSession.id).where(_reapable(now)))
    return list(result.scalars().all())


async def delete_if_reapable(db: AsyncSession, id: UUID, now: datetime) -> bool:
    """
    Delete one session if it is still expired or revoked.

    Returns:
        True if the row was deleted, False if it no longer qualifies or is
        already gone.
    """
    result = await db.execute(
        delete(UserSession)
        .where(UserSession.id == id, _reapable(now))
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0
