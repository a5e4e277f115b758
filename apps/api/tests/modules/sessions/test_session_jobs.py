"""
Tests for the session reaper job and the session repository.

These tests cover:
- Deleting expired and revoked sessions, leaving live ones untouched
- Idempotency (second firing is a no-op)
- Conditional delete when a session stops qualifying
- Aborted firing when candidates cannot be loaded
- Per-record failures not aborting the batch
- Job registration and interval fallback
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import select

from brevet.core.config import Settings
from brevet.core.scheduler import JobScheduler
from brevet.modules.sessions import repository
from brevet.modules.sessions.jobs import (
    JOB_ID_REAP_SESSIONS,
    SessionReaper,
    register_session_jobs,
)
from brevet.modules.sessions.models import UserSession
from brevet.modules.shared.outcomes import OutcomeStatus


async def _add_session(db, *, expires_at, is_revoked=False):
    session = UserSession(
        user_id=uuid4(),
        refresh_token_hash=uuid4().hex + uuid4().hex,
        expires_at=expires_at,
        is_revoked=is_revoked,
    )
    db.add(session)
    await db.commit()
    return session.id


async def _remaining_ids(session_maker):
    async with session_maker() as db:
        result = await db.execute(select(UserSession.id))
        return set(result.scalars().all())


class TestSessionReaper:
    """Tests for SessionReaper.run."""

    @pytest.mark.asyncio
    async def test_deletes_expired_and_revoked_sessions_only(self, db, session_maker, now):
        """Expired or revoked sessions are deleted; live sessions remain."""
        expired = await _add_session(db, expires_at=now - timedelta(hours=1))
        expires_exactly_now = await _add_session(db, expires_at=now)
        revoked = await _add_session(db, expires_at=now + timedelta(days=1), is_revoked=True)
        live = await _add_session(db, expires_at=now + timedelta(hours=1))

        outcome = await SessionReaper(session_maker).run(now=now)

        assert not outcome.aborted
        assert outcome.ids_with(OutcomeStatus.APPLIED) == {
            str(expired),
            str(expires_exactly_now),
            str(revoked),
        }
        assert outcome.errors == 0
        assert await _remaining_ids(session_maker) == {live}

    @pytest.mark.asyncio
    async def test_second_firing_is_noop(self, db, session_maker, now):
        """Re-running with no candidates changes nothing."""
        await _add_session(db, expires_at=now - timedelta(minutes=5))
        reaper = SessionReaper(session_maker)

        await reaper.run(now=now)
        outcome = await reaper.run(now=now)

        assert outcome.records == []
        assert not outcome.aborted

    @pytest.mark.asyncio
    async def test_empty_store(self, session_maker, now):
        """No sessions at all yields an empty, successful outcome."""
        outcome = await SessionReaper(session_maker).run(now=now)

        assert outcome.records == []
        assert outcome.to_dict()["total_applied"] == 0

    @pytest.mark.asyncio
    async def test_session_gone_before_delete_is_skipped(self, db, session_maker, now):
        """A candidate deleted by someone else between read and write is skipped."""
        session_id = await _add_session(db, expires_at=now - timedelta(hours=1))
        real_delete = repository.delete_if_reapable

        async def delete_twice(db, id, now):
            await real_delete(db, id, now)
            return await real_delete(db, id, now)

        with patch.object(repository, "delete_if_reapable", side_effect=delete_twice):
            outcome = await SessionReaper(session_maker).run(now=now)

        assert outcome.records[0].record_id == str(session_id)
        assert outcome.records[0].status is OutcomeStatus.SKIPPED
        assert outcome.records[0].reason == "no_longer_reapable"

    @pytest.mark.asyncio
    async def test_candidate_read_failure_aborts_firing(self, failing_session_maker, now):
        """If candidates cannot be loaded the firing is skipped entirely."""
        outcome = await SessionReaper(failing_session_maker).run(now=now)

        assert outcome.aborted
        assert "database unreachable" in outcome.abort_reason
        assert outcome.records == []

    @pytest.mark.asyncio
    async def test_record_failure_does_not_abort_batch(self, db, session_maker, now):
        """One failing delete is recorded as an error and the loop continues."""
        first = await _add_session(db, expires_at=now - timedelta(hours=2))
        second = await _add_session(db, expires_at=now - timedelta(hours=1))
        real_delete = repository.delete_if_reapable

        async def flaky_delete(db, id, now):
            if id == first:
                raise RuntimeError("deadlock detected")
            return await real_delete(db, id, now)

        with patch.object(repository, "delete_if_reapable", side_effect=flaky_delete):
            outcome = await SessionReaper(session_maker).run(now=now)

        assert outcome.ids_with(OutcomeStatus.ERROR) == {str(first)}
        assert outcome.ids_with(OutcomeStatus.APPLIED) == {str(second)}
        assert await _remaining_ids(session_maker) == {first}


class TestSessionRepository:
    """Tests for the session repository primitives."""

    @pytest.mark.asyncio
    async def test_revoke_by_refresh_hash_is_conditional(self, db, now):
        """Revoking twice only succeeds the first time."""
        session = await repository.create(
            db,
            user_id=uuid4(),
            refresh_token_hash="a" * 64,
            expires_at=now + timedelta(days=1),
        )
        await db.commit()

        assert await repository.revoke_by_refresh_hash(db, "a" * 64) is True
        assert await repository.revoke_by_refresh_hash(db, "a" * 64) is False
        await db.refresh(session)
        assert session.is_revoked is True

    @pytest.mark.asyncio
    async def test_revoke_by_refresh_hash_checks_owner(self, db, now):
        """A session owned by another user is not revoked."""
        owner = uuid4()
        await repository.create(
            db,
            user_id=owner,
            refresh_token_hash="b" * 64,
            expires_at=now + timedelta(days=1),
        )
        await db.commit()

        assert await repository.revoke_by_refresh_hash(db, "b" * 64, user_id=uuid4()) is False
        assert await repository.revoke_by_refresh_hash(db, "b" * 64, user_id=owner) is True

    @pytest.mark.asyncio
    async def test_get_live_by_refresh_hash(self, db, now):
        """Only unexpired, unrevoked sessions are returned."""
        await repository.create(
            db,
            user_id=uuid4(),
            refresh_token_hash="c" * 64,
            expires_at=now + timedelta(hours=1),
        )
        await db.commit()

        assert await repository.get_live_by_refresh_hash(db, "c" * 64, now) is not None
        assert (
            await repository.get_live_by_refresh_hash(db, "c" * 64, now + timedelta(hours=2))
            is None
        )


class TestRegisterSessionJobs:
    """Tests for register_session_jobs."""

    def test_registers_with_configured_interval(self, session_maker):
        """The reaper runs every cleanup_interval_hours."""
        scheduler = JobScheduler()
        register_session_jobs(scheduler, session_maker, Settings(cleanup_interval_hours=6))

        jobs = scheduler.list_registered_jobs()
        assert [job["job_id"] for job in jobs] == [JOB_ID_REAP_SESSIONS]
        assert scheduler._triggers[JOB_ID_REAP_SESSIONS].interval == timedelta(hours=6)

    def test_invalid_interval_falls_back_to_one_hour(self, session_maker):
        """A non-positive interval falls back to the default."""
        scheduler = JobScheduler()
        register_session_jobs(scheduler, session_maker, Settings(cleanup_interval_hours=0))

        assert scheduler._triggers[JOB_ID_REAP_SESSIONS].interval == timedelta(hours=1)
