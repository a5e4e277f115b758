"""
Background Job Scheduler

Runs the consistency jobs on independent fixed intervals using APScheduler
with AsyncIO support. Handles job registration, execution, and graceful
shutdown.

Design Principles:
- One trigger per job; jobs are independent of each other
- Single-flight per job: a firing is skipped while the previous firing of the
  same job (scheduled or manual) is still running
- Failed jobs are logged but don't crash the scheduler
- Jobs can be triggered manually for testing and maintenance
- Shutdown stops future firings and waits for in-flight ones to finish

Usage:
    scheduler = JobScheduler()
    register_session_jobs(scheduler, async_session_maker, settings)
    scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

from brevet.core.config import coerce_positive_int

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]


class SchedulerConfig:
    """Configuration for the background scheduler."""

    # Default timezone for job scheduling
    TIMEZONE = "UTC"

    # Job execution settings
    JOB_COALESCE = True  # Combine multiple missed executions into one
    JOB_MAX_INSTANCES = 1  # Only one instance of each job can run at a time
    JOB_MISFIRE_GRACE_TIME = 60 * 5  # 5 minutes grace time for missed jobs

    # Scheduler settings
    EXECUTORS = {
        "default": {"type": "asyncio"},
    }

    JOB_DEFAULTS = {
        "coalesce": JOB_COALESCE,
        "max_instances": JOB_MAX_INSTANCES,
        "misfire_grace_time": JOB_MISFIRE_GRACE_TIME,
    }


def resolve_interval(value: Any, default: int, name: str = "job_interval") -> int:
    """Positive interval or the default (logged) when misconfigured."""
    return coerce_positive_int(name, value, default)


def _job_listener(event: JobExecutionEvent) -> None:
    """
    Listener for job execution events.

    Logs job execution results for monitoring and debugging.
    """
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed with exception: {event.exception}",
            exc_info=event.exception,
        )
    else:
        logger.debug(f"Job {event.job_id} executed at {datetime.now(UTC).isoformat()}")


class JobScheduler:
    """
    Owns an AsyncIOScheduler and the registry of consistency jobs.

    Jobs may be registered before or after start(); registrations made before
    start are added to the scheduler when it starts.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None):
        # APScheduler pops keys out of these dicts while configuring, so it gets copies
        self._scheduler = scheduler or AsyncIOScheduler(
            timezone=SchedulerConfig.TIMEZONE,
            executors={name: dict(options) for name, options in SchedulerConfig.EXECUTORS.items()},
            job_defaults=dict(SchedulerConfig.JOB_DEFAULTS),
        )
        self._scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self._registry: dict[str, JobFunc] = {}
        self._triggers: dict[str, BaseTrigger] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def is_job_running(self, job_id: str) -> bool:
        lock = self._locks.get(job_id)
        return lock is not None and lock.locked()

    def _single_flight(self, job_id: str, func: JobFunc) -> JobFunc:
        """Wrap a job so overlapping invocations of the same job are skipped."""
        lock = self._locks.setdefault(job_id, asyncio.Lock())

        async def run_once() -> Any:
            if lock.locked():
                logger.warning(
                    f"Job {job_id} is still running, skipping this firing",
                    extra={"job_id": job_id},
                )
                return None
            async with lock:
                return await func()

        run_once.__name__ = f"single_flight_{job_id}"
        return run_once

    def register_job(
        self,
        job_id: str,
        func: JobFunc,
        trigger: BaseTrigger,
        replace_existing: bool = True,
    ) -> None:
        """
        Register a job with the scheduler.

        Args:
            job_id: Unique identifier for the job
            func: Async function to execute (no arguments)
            trigger: APScheduler trigger (IntervalTrigger, CronTrigger, etc.)
            replace_existing: Whether to replace an existing job with the same ID
        """
        self._registry[job_id] = func
        self._triggers[job_id] = trigger

        if not self._scheduler.running:
            logger.debug(f"Scheduler not started, job {job_id} will be added on start")
            return

        self._add_to_scheduler(job_id, replace_existing)

    def _add_to_scheduler(self, job_id: str, replace_existing: bool = True) -> None:
        self._scheduler.add_job(
            self._single_flight(job_id, self._registry[job_id]),
            trigger=self._triggers[job_id],
            id=job_id,
            replace_existing=replace_existing,
        )
        logger.info(f"Registered job: {job_id} ({self._triggers[job_id]})")

    def start(self) -> None:
        """
        Start the scheduler and add every registered job.

        Must be called from within a running event loop.
        """
        if self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        logger.info(f"Starting background job scheduler with {len(self._registry)} jobs...")
        for job_id in self._registry:
            self._add_to_scheduler(job_id)

        self._scheduler.start()
        logger.info("Background job scheduler started successfully")

    async def stop(self, timeout: float | None = None) -> None:
        """
        Stop the scheduler gracefully.

        Pauses the scheduler so no further firings start, waits for in-flight
        firings to finish (bounded by ``timeout`` seconds if given), then shuts
        the scheduler down. The asyncio executor cancels anything still pending
        at shutdown, which is why the wait happens first.
        """
        if not self._scheduler.running:
            logger.debug("Scheduler not running, nothing to stop")
            return

        logger.info("Stopping background job scheduler...")
        self._scheduler.pause()

        running = [job_id for job_id in self._locks if self.is_job_running(job_id)]
        if running:
            logger.info(f"Waiting for running jobs to finish: {running}")
            try:
                await asyncio.wait_for(self._wait_for_idle(), timeout=timeout)
            except TimeoutError:
                logger.warning(f"Jobs still running after {timeout}s, shutting down anyway")

        self._scheduler.shutdown(wait=False)
        logger.info("Background job scheduler stopped")

    async def _wait_for_idle(self) -> None:
        # Jobs registered or triggered while waiting add locks; iterate a snapshot
        for lock in list(self._locks.values()):
            async with lock:
                pass

    async def trigger_job_manually(self, job_id: str) -> dict[str, Any]:
        """
        Trigger a job manually for testing or maintenance purposes.

        Runs the job function directly under the same single-flight guard as
        scheduled firings.

        Returns:
            Dict with job_id, status ("success", "skipped" or "error"),
            executed_at, and the job's own result or error message.

        Raises:
            ValueError: If job_id is not registered
        """
        if job_id not in self._registry:
            raise ValueError(
                f"Job {job_id} not found in registry. Available jobs: {list(self._registry)}"
            )

        executed_at = datetime.now(UTC)

        if self.is_job_running(job_id):
            logger.info(f"Manual trigger of {job_id} skipped: job already running")
            return {
                "job_id": job_id,
                "status": "skipped",
                "executed_at": executed_at.isoformat(),
                "reason": "already_running",
            }

        logger.info(f"Manually triggering job: {job_id}")
        guarded = self._single_flight(job_id, self._registry[job_id])

        try:
            result = await guarded()
        except Exception as e:
            logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
            return {
                "job_id": job_id,
                "status": "error",
                "executed_at": executed_at.isoformat(),
                "error": str(e),
            }

        logger.info(f"Manual execution of job {job_id} completed successfully")
        response: dict[str, Any] = {
            "job_id": job_id,
            "status": "success",
            "executed_at": executed_at.isoformat(),
        }
        if hasattr(result, "to_dict"):
            response["result"] = result.to_dict()
        return response

    def list_registered_jobs(self) -> list[dict[str, Any]]:
        """
        List all registered jobs and their status.

        Returns:
            List of dicts with job_id, running, next_run_time and is_paused.
        """
        jobs = []

        for job_id in self._registry:
            job_info: dict[str, Any] = {
                "job_id": job_id,
                "running": self.is_job_running(job_id),
                "next_run_time": None,
                "is_paused": True,
            }

            scheduled_job = self._scheduler.get_job(job_id) if self._scheduler.running else None
            if scheduled_job:
                job_info["next_run_time"] = (
                    scheduled_job.next_run_time.isoformat() if scheduled_job.next_run_time else None
                )
                job_info["is_paused"] = scheduled_job.next_run_time is None

            jobs.append(job_info)

        return jobs

    def pause_job(self, job_id: str) -> bool:
        """
        Pause a scheduled job.

        Returns:
            True if job was paused, False if job not found
        """
        if not self._scheduler.running or self._scheduler.get_job(job_id) is None:
            logger.warning(f"Job not found for pausing: {job_id}")
            return False

        self._scheduler.pause_job(job_id)
        logger.info(f"Paused job: {job_id}")
        return True

    def resume_job(self, job_id: str) -> bool:
        """
        Resume a paused job.

        Returns:
            True if job was resumed, False if job not found
        """
        if not self._scheduler.running or self._scheduler.get_job(job_id) is None:
            logger.warning(f"Job not found for resuming: {job_id}")
            return False

        self._scheduler.resume_job(job_id)
        logger.info(f"Resumed job: {job_id}")
        return True
