"""
Purchase Background Jobs

Scheduled task that expires unpaid purchase orders once their deadline passes.

Design Principles:
- The only transition written is pending -> expired
- Each expiry is one conditional UPDATE; a purchase confirmed while the job
  runs no longer matches and is skipped, never forced to expired
- Jobs handle their own database sessions, one per record
- Jobs continue processing even if individual records fail

Schedule:
- Runs every CLEANUP_INTERVAL_HOURS (default 1 hour), on its own trigger
- Can also be triggered manually via admin endpoints
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brevet.core.config import Settings
from brevet.core.scheduler import JobScheduler, resolve_interval
from brevet.modules.purchases import repository
from brevet.modules.shared.outcomes import JobOutcome, OutcomeStatus, RecordOutcome

logger = logging.getLogger(__name__)

JOB_ID_EXPIRE_PURCHASES = "purchases_expire_pending"
DEFAULT_INTERVAL_HOURS = 1


class PurchaseExpirer:
    """
    Sets ``payment_status = expired`` on pending purchases past ``expired_at``.

    Args:
        session_maker: Factory for database sessions
    """

    job_id = JOB_ID_EXPIRE_PURCHASES

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _expire(self, purchase_id: UUID, now: datetime) -> RecordOutcome:
        async with self.session_maker() as db:
            expired = await repository.expire_if_stale(db, purchase_id, now)

        if not expired:
            logger.info(
                f"Purchase {purchase_id} left pending before expiry, skipping",
                extra={"job_id": self.job_id, "record_id": str(purchase_id)},
            )
            return RecordOutcome(str(purchase_id), OutcomeStatus.SKIPPED, "no_longer_pending")

        logger.info(
            f"Expired purchase {purchase_id}",
            extra={"job_id": self.job_id, "record_id": str(purchase_id)},
        )
        return RecordOutcome(str(purchase_id), OutcomeStatus.APPLIED)

    async def run(self, now: datetime | None = None) -> JobOutcome:
        """
        Expire every stale pending purchase.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            JobOutcome with one record per candidate purchase
        """
        now = now or datetime.now(UTC)
        outcome = JobOutcome(job_id=self.job_id, executed_at=now)

        try:
            async with self.session_maker() as db:
                candidate_ids = await repository.get_stale_pending_ids(db, now)
        except Exception as e:
            logger.error(
                f"Purchase expirer could not load candidates, skipping firing: {e}",
                exc_info=True,
                extra={"job_id": self.job_id},
            )
            outcome.abort(str(e))
            return outcome

        logger.info(
            f"Found {len(candidate_ids)} pending purchases past expiry",
            extra={"job_id": self.job_id},
        )

        for purchase_id in candidate_ids:
            try:
                record = await self._expire(purchase_id, now)
            except Exception as e:
                logger.error(
                    f"Error expiring purchase {purchase_id}: {e}",
                    exc_info=True,
                    extra={"job_id": self.job_id, "record_id": str(purchase_id)},
                )
                record = RecordOutcome(str(purchase_id), OutcomeStatus.ERROR, str(e))
            outcome.add(record)

        logger.info(
            f"Purchase expirer completed. Expired: {outcome.applied}, "
            f"Skipped: {outcome.skipped}, Errors: {outcome.errors}",
            extra={"job_id": self.job_id},
        )
        return outcome


def register_purchase_jobs(
    scheduler: JobScheduler,
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> PurchaseExpirer:
    """
    Register the purchase expirer with the scheduler.

    Interval: ``settings.cleanup_interval_hours`` (falls back to 1 hour).
    """
    hours = resolve_interval(
        settings.cleanup_interval_hours, DEFAULT_INTERVAL_HOURS, "cleanup_interval_hours"
    )
    expirer = PurchaseExpirer(session_maker)
    scheduler.register_job(
        job_id=JOB_ID_EXPIRE_PURCHASES,
        func=expirer.run,
        trigger=IntervalTrigger(hours=hours),
    )
    logger.info(f"Registered job: {JOB_ID_EXPIRE_PURCHASES} (interval: {hours} hour(s))")
    return expirer
