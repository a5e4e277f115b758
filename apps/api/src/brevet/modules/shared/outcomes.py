"""
Job Outcomes

Per-record results collected by the consistency jobs. A firing never raises
for a single bad record; instead each record gets an outcome and the firing
returns a JobOutcome summarising the batch.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class OutcomeStatus(str, enum.Enum):
    """Result of processing one candidate record."""

    APPLIED = "applied"  # transition written
    SKIPPED = "skipped"  # predicate no longer held, or nothing to do
    ERROR = "error"  # record failed, batch continued


@dataclass(frozen=True)
class RecordOutcome:
    record_id: str
    status: OutcomeStatus
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"record_id": self.record_id, "status": self.status.value}
        if self.reason:
            result["reason"] = self.reason
        return result


@dataclass
class JobOutcome:
    """
    Summary of one job firing.

    ``aborted`` is set when the candidate set could not be read; in that case
    no record was touched.
    """

    job_id: str
    executed_at: datetime
    records: list[RecordOutcome] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str | None = None

    def add(self, outcome: RecordOutcome) -> None:
        self.records.append(outcome)

    def abort(self, reason: str) -> None:
        self.aborted = True
        self.abort_reason = reason

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for record in self.records if record.status is status)

    @property
    def applied(self) -> int:
        return self._count(OutcomeStatus.APPLIED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def errors(self) -> int:
        return self._count(OutcomeStatus.ERROR)

    def ids_with(self, status: OutcomeStatus) -> set[str]:
        return {record.record_id for record in self.records if record.status is status}

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "executed_at": self.executed_at.isoformat(),
            "aborted": self.aborted,
            "abort_reason": self.abort_reason,
            "total_applied": self.applied,
            "total_skipped": self.skipped,
            "total_errors": self.errors,
            "records": [record.to_dict() for record in self.records],
        }
