"""
Session Background Jobs

Scheduled task that removes dead login sessions:
- A session is dead once it has expired or been revoked
- Dead sessions are deleted; live sessions are never touched

Design Principles:
- Jobs are idempotent (a firing with no candidates is a no-op)
- Jobs handle their own database sessions, one per record
- Jobs continue processing even if individual records fail
- Each delete re-checks the predicate, so a concurrently refreshed or
  already-deleted session is skipped rather than clobbered

Schedule:
- Runs every CLEANUP_INTERVAL_HOURS (default 1 hour)
- Can also be triggered manually via admin endpoints
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brevet.core.config import Settings
from brevet.core.scheduler import JobScheduler, resolve_interval
from brevet.modules.sessions import repository
from brevet.modules.shared.outcomes import JobOutcome, OutcomeStatus, RecordOutcome

logger = logging.getLogger(__name__)

JOB_ID_REAP_SESSIONS = "sessions_reap_dead_sessions"
DEFAULT_INTERVAL_HOURS = 1


class SessionReaper:
    """
    Deletes sessions where ``expires_at <= now`` or ``is_revoked``.

    Args:
        session_maker: Factory for database sessions
    """

    job_id = JOB_ID_REAP_SESSIONS

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _reap(self, session_id: UUID, now: datetime) -> RecordOutcome:
        async with self.session_maker() as db:
            deleted = await repository.delete_if_reapable(db, session_id, now)

        if not deleted:
            return RecordOutcome(str(session_id), OutcomeStatus.SKIPPED, "no_longer_reapable")
        return RecordOutcome(str(session_id), OutcomeStatus.APPLIED)

    async def run(self, now: datetime | None = None) -> JobOutcome:
        """
        Delete every dead session.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            JobOutcome with one record per candidate session
        """
        now = now or datetime.now(UTC)
        outcome = JobOutcome(job_id=self.job_id, executed_at=now)

        try:
            async with self.session_maker() as db:
                candidate_ids = await repository.get_reapable_ids(db, now)
        except Exception as e:
            logger.error(
                f"Session reaper could not load candidates, skipping firing: {e}",
                exc_info=True,
                extra={"job_id": self.job_id},
            )
            outcome.abort(str(e))
            return outcome

        logger.info(f"Found {len(candidate_ids)} sessions to reap", extra={"job_id": self.job_id})

        for session_id in candidate_ids:
            try:
                record = await self._reap(session_id, now)
            except Exception as e:
                logger.error(
                    f"Error reaping session {session_id}: {e}",
                    exc_info=True,
                    extra={"job_id": self.job_id, "record_id": str(session_id)},
                )
                record = RecordOutcome(str(session_id), OutcomeStatus.ERROR, str(e))
            outcome.add(record)

        logger.info(
            f"Session reaper completed. Deleted: {outcome.applied}, "
            f"Skipped: {outcome.skipped}, Errors: {outcome.errors}",
            extra={"job_id": self.job_id},
        )
        return outcome


def register_session_jobs(
    scheduler: JobScheduler,
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> SessionReaper:
    """
    Register the session reaper with the scheduler.

    Interval: ``settings.cleanup_interval_hours`` (falls back to 1 hour).
    """
    hours = resolve_interval(
        settings.cleanup_interval_hours, DEFAULT_INTERVAL_HOURS, "cleanup_interval_hours"
    )
    reaper = SessionReaper(session_maker)
    scheduler.register_job(
        job_id=JOB_ID_REAP_SESSIONS,
        func=reaper.run,
        trigger=IntervalTrigger(hours=hours),
    )
    logger.info(f"Registered job: {JOB_ID_REAP_SESSIONS} (interval: {hours} hour(s))")
    return reaper
