"""
Quiz Models

Timed exams, their multiple-choice questions, and the attempts students make
at them.

An attempt is open while ``ended_at`` is NULL. ``ended_at`` is written once,
either by the student's submission or by the auto-submit job, and is never
changed afterwards. While open, answers are autosaved as temp submissions;
ending the attempt copies them into scored final submissions and a result.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brevet.modules.shared.models import BaseModel


class Quiz(BaseModel):
    """
    An exam with a per-attempt duration and an optional hard cutoff.

    ``end_time`` is a wall-clock deadline shared by every attempt.
    """

    __tablename__ = "quizzes"

    title: Mapped[str] = mapped_column(Text, nullable=False)

    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minute: Mapped[int] = mapped_column(Integer, nullable=False)

    attempts: Mapped[list["QuizAttempt"]] = relationship(
        "QuizAttempt", back_populates="quiz", cascade="all, delete-orphan"
    )
    questions: Mapped[list["QuizQuestion"]] = relationship(
        "QuizQuestion", back_populates="quiz", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Quiz(id={self.id}, title={self.title!r})>"


class QuizQuestion(BaseModel):
    """A single question of a quiz."""

    __tablename__ = "quiz_questions"

    quiz_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quizzes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)

    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="questions")
    options: Mapped[list["QuizOption"]] = relationship(
        "QuizOption", back_populates="question", cascade="all, delete-orphan"
    )


class QuizOption(BaseModel):
    """An answer option; exactly the options with ``is_correct`` score a point."""

    __tablename__ = "quiz_options"

    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    option_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    question: Mapped["QuizQuestion"] = relationship("QuizQuestion", back_populates="options")


class QuizAttempt(BaseModel):
    """One student's attempt at a quiz."""

    __tablename__ = "quiz_attempts"

    quiz_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quizzes.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="attempts")

    __table_args__ = (
        Index("ix_quiz_attempts_quiz_id", "quiz_id"),
        Index("ix_quiz_attempts_user_id", "user_id"),
    )

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def __repr__(self) -> str:
        return f"<QuizAttempt(id={self.id}, quiz_id={self.quiz_id}, open={self.is_open})>"


class QuizTempSubmission(BaseModel):
    """Autosaved answer of an open attempt; one per question."""

    __tablename__ = "quiz_temp_submissions"

    attempt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
        nullable=False,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    selected_option_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_quiz_temp_attempt_question"),
    )


class QuizSubmission(BaseModel):
    """Final, scored answer of an ended attempt."""

    __tablename__ = "quiz_submissions"

    attempt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    selected_option_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # 1 = correct, 0 = wrong
    score: Mapped[int] = mapped_column(Integer, nullable=False)


class QuizResult(BaseModel):
    """Totals for one ended attempt."""

    __tablename__ = "quiz_results"

    attempt_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False)
    wrong_answers: Mapped[int] = mapped_column(Integer, nullable=False)
    score_percent: Mapped[float] = mapped_column(Float, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<QuizResult(attempt_id={self.attempt_id}, "
            f"correct={self.correct_answers}/{self.total_questions})>"
        )
