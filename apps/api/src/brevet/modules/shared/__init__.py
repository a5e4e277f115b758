"""
Shared building blocks for feature modules.
"""

from brevet.modules.shared.models import BaseModel
from brevet.modules.shared.outcomes import JobOutcome, OutcomeStatus, RecordOutcome

__all__ = ["BaseModel", "JobOutcome", "OutcomeStatus", "RecordOutcome"]
