"""
Quiz Repository

Database operations for quizzes, quiz attempts and their answers.

Design Principles:
- Ending an attempt is guarded by a conditional UPDATE (``ended_at IS NULL``)
- Scoring and the result are written in the same transaction as ``ended_at``,
  so an attempt is never ended without a result
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Row, and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Quiz,
    QuizAttempt,
    QuizOption,
    QuizQuestion,
    QuizResult,
    QuizSubmission,
    QuizTempSubmission,
)


async def create_quiz(
    db: AsyncSession,
    *,
    title: str,
    duration_minute: int,
    end_time: datetime | None = None,
) -> Quiz:
    """Create a quiz."""
    quiz = Quiz(title=title, duration_minute=duration_minute, end_time=end_time)
    db.add(quiz)
    await db.commit()
    await db.refresh(quiz)
    return quiz


async def add_question(
    db: AsyncSession,
    *,
    quiz_id: UUID,
    question: str,
    options: list[tuple[str, bool]],
) -> QuizQuestion:
    """
    Add a question with its options to a quiz.

    Args:
        options: (option_text, is_correct) pairs
    """
    record = QuizQuestion(
        quiz_id=quiz_id,
        question=question,
        options=[QuizOption(option_text=text, is_correct=correct) for text, correct in options],
    )
    db.add(record)
    await db.commit()
    await db.refresh(record, attribute_names=["options"])
    return record


async def start_attempt(
    db: AsyncSession,
    *,
    quiz_id: UUID,
    user_id: UUID,
    started_at: datetime,
) -> QuizAttempt:
    """Create an open attempt."""
    attempt = QuizAttempt(quiz_id=quiz_id, user_id=user_id, started_at=started_at)
    db.add(attempt)
    await db.commit()
    await db.refresh(attempt)
    return attempt


async def save_temp_answer(
    db: AsyncSession,
    *,
    attempt_id: UUID,
    question_id: UUID,
    selected_option_id: UUID,
) -> QuizTempSubmission:
    """Autosave the answer to one question, replacing any earlier answer."""
    result = await db.execute(
        select(QuizTempSubmission).where(
            QuizTempSubmission.attempt_id == attempt_id,
            QuizTempSubmission.question_id == question_id,
        )
    )
    temp = result.scalar_one_or_none()
    if temp is None:
        temp = QuizTempSubmission(
            attempt_id=attempt_id,
            question_id=question_id,
            selected_option_id=selected_option_id,
        )
        db.add(temp)
    else:
        temp.selected_option_id = selected_option_id

    await db.commit()
    await db.refresh(temp)
    return temp


async def get_quiz_by_id(db: AsyncSession, id: UUID) -> Quiz | None:
    """Get quiz by ID."""
    return await db.get(Quiz, id)


async def get_attempt_by_id(db: AsyncSession, id: UUID) -> QuizAttempt | None:
    """Get attempt by ID."""
    return await db.get(QuizAttempt, id)


async def get_result_by_attempt_id(db: AsyncSession, attempt_id: UUID) -> QuizResult | None:
    """Get the result of an ended attempt."""
    result = await db.execute(select(QuizResult).where(QuizResult.attempt_id == attempt_id))
    return result.scalar_one_or_none()


async def get_submissions_by_attempt_id(
    db: AsyncSession, attempt_id: UUID
) -> list[QuizSubmission]:
    """Final scored answers of an attempt."""
    result = await db.execute(
        select(QuizSubmission).where(QuizSubmission.attempt_id == attempt_id)
    )
    return list(result.scalars().all())


async def get_open_attempts(db: AsyncSession) -> list[Row]:
    """
    All attempts that have not ended.

    Returns:
        Rows of (id, quiz_id, started_at)
    """
    result = await db.execute(
        select(QuizAttempt.id, QuizAttempt.quiz_id, QuizAttempt.started_at).where(
            QuizAttempt.ended_at.is_(None)
        )
    )
    return list(result.all())


async def finalize_attempt_if_open(
    db: AsyncSession,
    id: UUID,
    ended_at: datetime,
) -> QuizResult | None:
    """
    End an attempt that is still open and grade its saved answers.

    In one transaction: sets ``ended_at``, turns every temp submission into a
    final submission scored 1 (correct option) or 0, and stores the result.
    Only answered questions count towards the totals.

    Returns:
        The QuizResult, or None if the attempt had already ended (nothing is
        written in that case).
    """
    closed = await db.execute(
        update(QuizAttempt)
        .where(QuizAttempt.id == id, QuizAttempt.ended_at.is_(None))
        .values(ended_at=ended_at, updated_at=ended_at)
        .execution_options(synchronize_session=False)
    )
    if closed.rowcount == 0:
        await db.rollback()
        return None

    answers = await db.execute(
        select(
            QuizTempSubmission.question_id,
            QuizTempSubmission.selected_option_id,
            QuizOption.is_correct,
        )
        .outerjoin(
            QuizOption,
            and_(
                QuizOption.id == QuizTempSubmission.selected_option_id,
                QuizOption.question_id == QuizTempSubmission.question_id,
            ),
        )
        .where(QuizTempSubmission.attempt_id == id)
    )

    correct = 0
    total = 0
    for question_id, selected_option_id, is_correct in answers.all():
        score = 1 if is_correct else 0
        correct += score
        total += 1
        db.add(
            QuizSubmission(
                attempt_id=id,
                question_id=question_id,
                selected_option_id=selected_option_id,
                score=score,
            )
        )

    quiz_result = QuizResult(
        attempt_id=id,
        total_questions=total,
        correct_answers=correct,
        wrong_answers=total - correct,
        score_percent=float(correct * 100 // total) if total else 0.0,
    )
    db.add(quiz_result)

    await db.commit()
    return quiz_result
