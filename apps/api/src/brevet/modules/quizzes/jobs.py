"""
Quiz Background Jobs

Scheduled task that auto-submits quiz attempts whose time is up.

An attempt's deadline is the earlier of:
1. started_at + quiz duration
2. the quiz's hard end_time, when set

The hard end_time always caps the duration: a student who starts late is
closed at the cutoff, never given the full nominal duration past it.

Design Principles:
- Closing an attempt is one conditional UPDATE (``ended_at IS NULL``), so an
  attempt the student submitted meanwhile keeps its own ``ended_at``
- The saved answers are graded and the result stored in the same transaction
  as the close, so an ended attempt always has a result
- A missing or unreadable quiz skips that attempt only
- Jobs handle their own database sessions, one per record

Schedule:
- Runs every QUIZ_AUTO_SUBMIT_INTERVAL_MINUTES (default 1 minute)
- Can also be triggered manually via admin endpoints
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brevet.core.config import Settings
from brevet.core.scheduler import JobScheduler, resolve_interval
from brevet.modules.quizzes import repository
from brevet.modules.shared.models import as_utc
from brevet.modules.shared.outcomes import JobOutcome, OutcomeStatus, RecordOutcome

logger = logging.getLogger(__name__)

JOB_ID_AUTO_SUBMIT = "quizzes_auto_submit_attempts"
DEFAULT_INTERVAL_MINUTES = 1


def compute_deadline(
    started_at: datetime,
    duration_minutes: int,
    end_time: datetime | None = None,
) -> datetime:
    """
    Latest moment an attempt may stay open.

    Args:
        started_at: When the attempt began
        duration_minutes: Per-attempt duration of the quiz
        end_time: The quiz's hard cutoff, if any

    Returns:
        ``min(started_at + duration, end_time)`` in UTC
    """
    deadline = as_utc(started_at) + timedelta(minutes=duration_minutes)
    if end_time is not None:
        deadline = min(deadline, as_utc(end_time))
    return deadline


class QuizAutoSubmitter:
    """
    Ends open attempts past their deadline (``ended_at = now``) and grades them.

    Args:
        session_maker: Factory for database sessions
    """

    job_id = JOB_ID_AUTO_SUBMIT

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _process(
        self,
        attempt_id: UUID,
        quiz_id: UUID,
        started_at: datetime,
        now: datetime,
    ) -> RecordOutcome:
        async with self.session_maker() as db:
            quiz = await repository.get_quiz_by_id(db, quiz_id)
            if quiz is None:
                logger.warning(
                    f"Quiz {quiz_id} for attempt {attempt_id} not found, skipping",
                    extra={"job_id": self.job_id, "record_id": str(attempt_id)},
                )
                return RecordOutcome(str(attempt_id), OutcomeStatus.SKIPPED, "quiz_not_found")

            deadline = compute_deadline(started_at, quiz.duration_minute, quiz.end_time)
            if now <= deadline:
                return RecordOutcome(str(attempt_id), OutcomeStatus.SKIPPED, "within_time_limit")

            result = await repository.finalize_attempt_if_open(db, attempt_id, now)

        if result is None:
            return RecordOutcome(str(attempt_id), OutcomeStatus.SKIPPED, "already_ended")

        logger.info(
            f"Auto-submitted attempt {attempt_id} (deadline {deadline.isoformat()}, "
            f"score {result.correct_answers}/{result.total_questions})",
            extra={"job_id": self.job_id, "record_id": str(attempt_id)},
        )
        return RecordOutcome(str(attempt_id), OutcomeStatus.APPLIED)

    async def run(self, now: datetime | None = None) -> JobOutcome:
        """
        Close every open attempt whose deadline has passed.

        Args:
            now: Reference time, defaults to the current UTC time. It is
                also the value written to ``ended_at``.

        Returns:
            JobOutcome with one record per open attempt
        """
        now = now or datetime.now(UTC)
        outcome = JobOutcome(job_id=self.job_id, executed_at=now)

        try:
            async with self.session_maker() as db:
                attempts = await repository.get_open_attempts(db)
        except Exception as e:
            logger.error(
                f"Quiz auto-submit could not load open attempts, skipping firing: {e}",
                exc_info=True,
                extra={"job_id": self.job_id},
            )
            outcome.abort(str(e))
            return outcome

        logger.debug(f"Found {len(attempts)} open quiz attempts", extra={"job_id": self.job_id})

        for attempt_id, quiz_id, started_at in attempts:
            try:
                record = await self._process(attempt_id, quiz_id, started_at, now)
            except Exception as e:
                logger.error(
                    f"Error auto-submitting attempt {attempt_id}: {e}",
                    exc_info=True,
                    extra={"job_id": self.job_id, "record_id": str(attempt_id)},
                )
                record = RecordOutcome(str(attempt_id), OutcomeStatus.ERROR, str(e))
            outcome.add(record)

        if outcome.applied or outcome.errors:
            logger.info(
                f"Quiz auto-submit completed. Submitted: {outcome.applied}, "
                f"Errors: {outcome.errors}",
                extra={"job_id": self.job_id},
            )
        return outcome


def register_quiz_jobs(
    scheduler: JobScheduler,
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> QuizAutoSubmitter:
    """
    Register the quiz auto-submitter with the scheduler.

    Interval: ``settings.quiz_auto_submit_interval_minutes`` (falls back to
    1 minute).
    """
    minutes = resolve_interval(
        settings.quiz_auto_submit_interval_minutes,
        DEFAULT_INTERVAL_MINUTES,
        "quiz_auto_submit_interval_minutes",
    )
    submitter = QuizAutoSubmitter(session_maker)
    scheduler.register_job(
        job_id=JOB_ID_AUTO_SUBMIT,
        func=submitter.run,
        trigger=IntervalTrigger(minutes=minutes),
    )
    logger.info(f"Registered job: {JOB_ID_AUTO_SUBMIT} (interval: {minutes} minute(s))")
    return submitter
