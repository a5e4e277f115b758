"""
Quizzes Module

Timed exams and student attempts.

Background Jobs (via APScheduler):
- quizzes_auto_submit_attempts: Runs every QUIZ_AUTO_SUBMIT_INTERVAL_MINUTES,
  closes and grades open attempts past min(started_at + duration, end_time)
"""

from .jobs import QuizAutoSubmitter, compute_deadline, register_quiz_jobs
from .models import Quiz, QuizAttempt, QuizResult

__all__ = [
    "Quiz",
    "QuizAttempt",
    "QuizAutoSubmitter",
    "QuizResult",
    "compute_deadline",
    "register_quiz_jobs",
]
