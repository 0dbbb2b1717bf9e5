"""Session status computation.

Pure and synchronous: given completion counts, punch times, the reporting date
and an explicit ``now``, decide the session status. Nothing here reads a clock
or a store, so the same inputs always give the same answer.

    completed_count == total_count      -> completed   (at any time)
    now > day 23:59:59 (reporting tz)   -> incomplete_expired
    nothing done and no punch-in        -> active      (not started)
    otherwise                           -> incomplete
"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from src.services.session_errors import EvidenceWarning, InvalidEvaluationTime
from src.services.task_completion import CompletionVector, TaskCompletion
from src.utils.timezone import day_start, get_reporting_timezone, reporting_deadline


class SessionStatus(enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.INCOMPLETE_EXPIRED)


@dataclass(frozen=True)
class StatusDecision:
    status: SessionStatus
    completed_count: int
    total_count: int
    not_started: bool
    deadline: datetime

    @property
    def remaining(self) -> int:
        return self.total_count - self.completed_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "remaining": self.remaining,
            "not_started": self.not_started,
            "deadline": self.deadline.isoformat(),
        }


def validate_evaluation_time(day: date, now: datetime, tz=None) -> None:
    """Reject a naive ``now`` or one earlier than the start of ``day``."""
    if now.tzinfo is None or now.tzinfo.utcoffset(now) is None:
        raise InvalidEvaluationTime("now must be timezone-aware")

    tz = tz or get_reporting_timezone()
    if now < day_start(day, tz):
        raise InvalidEvaluationTime(
            f"Cannot evaluate {day.isoformat()} at {now.isoformat()}: the reporting day has not started"
        )


def compute_session_status(
    completed_count: int,
    total_count: int,
    day: date,
    now: datetime,
    punch_in: Optional[datetime] = None,
    punch_out: Optional[datetime] = None,
    tz=None,
) -> StatusDecision:
    """
    Derive the session status for one worker-day.

    Args:
        completed_count: Checklist slots with evidence
        total_count: Checklist size (must be positive)
        day: Civil reporting date
        now: Aware evaluation instant
        punch_in: Punch-in timestamp, if any
        punch_out: Punch-out timestamp (only a checklist slot, never a gate)
        tz: Reporting time zone (defaults to the configured one)

    Returns:
        StatusDecision

    Raises:
        ValueError: If the counts are inconsistent
        InvalidEvaluationTime: If ``now`` is naive or before ``day`` begins
    """
    if total_count <= 0:
        raise ValueError(f"total_count must be positive, got {total_count}")
    if not 0 <= completed_count <= total_count:
        raise ValueError(
            f"completed_count must be between 0 and {total_count}, got {completed_count}"
        )
    tz = tz or get_reporting_timezone()
    validate_evaluation_time(day, now, tz)

    deadline = reporting_deadline(day, tz)
    not_started = completed_count == 0 and punch_in is None

    if completed_count == total_count:
        status = SessionStatus.COMPLETED
    elif now > deadline:
        status = SessionStatus.INCOMPLETE_EXPIRED
    elif not_started:
        status = SessionStatus.ACTIVE
    else:
        status = SessionStatus.INCOMPLETE

    return StatusDecision(
        status=status,
        completed_count=completed_count,
        total_count=total_count,
        not_started=not_started and status == SessionStatus.ACTIVE,
        deadline=deadline,
    )


@dataclass(frozen=True)
class WorkerDayEvaluation:
    """Status of one worker-day together with the per-task detail behind it."""

    worker_id: str
    day: date
    role: str
    status: SessionStatus
    completed_count: int
    total_count: int
    per_task: Tuple[TaskCompletion, ...]
    not_started: bool
    deadline: datetime
    market_id: Optional[str] = None
    punch_in: Optional[datetime] = None
    punch_out: Optional[datetime] = None
    warnings: Tuple[EvidenceWarning, ...] = field(default_factory=tuple)

    @classmethod
    def from_parts(
        cls, vector: CompletionVector, decision: StatusDecision, market_id: Optional[str] = None
    ) -> "WorkerDayEvaluation":
        return cls(
            worker_id=vector.worker_id,
            day=vector.day,
            role=vector.role,
            status=decision.status,
            completed_count=decision.completed_count,
            total_count=decision.total_count,
            per_task=vector.tasks,
            not_started=decision.not_started,
            deadline=decision.deadline,
            market_id=market_id,
            punch_in=vector.punch_in,
            punch_out=vector.punch_out,
            warnings=vector.warnings,
        )

    @property
    def remaining(self) -> int:
        return self.total_count - self.completed_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "date": self.day.isoformat(),
            "role": self.role,
            "market_id": self.market_id,
            "status": self.status.value,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "remaining": self.remaining,
            "not_started": self.not_started,
            "deadline": self.deadline.isoformat(),
            "punch_in": self.punch_in.isoformat() if self.punch_in else None,
            "punch_out": self.punch_out.isoformat() if self.punch_out else None,
            "tasks": [task.to_dict() for task in self.per_task],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }
