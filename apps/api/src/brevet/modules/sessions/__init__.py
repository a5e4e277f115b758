"""
Sessions Module

Login sessions backing refresh credentials.

Background Jobs (via APScheduler):
- sessions_reap_dead_sessions: Runs every CLEANUP_INTERVAL_HOURS, deletes
  sessions that are expired or revoked
"""

from .jobs import SessionReaper, register_session_jobs
from .models import UserSession

__all__ = ["SessionReaper", "UserSession", "register_session_jobs"]
