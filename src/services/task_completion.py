"""Task completion evaluation for one worker-day.

All evidence counts and the punch times are fetched concurrently. Each query
is bounded by a timeout; a query that fails or times out counts as zero and
leaves a warning on the result instead of aborting the evaluation, so a worker
is never reported as done because of a read failure and never loses sight of
the tasks that did load.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.services.checklist import (
    PUNCH_TASKS,
    EvidenceSource,
    RoleLike,
    TaskKind,
    checklist_for,
    is_known_role,
    resolve_role,
    sources_for,
    sources_for_checklist,
    task_label,
    DEFAULT_ROLE,
)
from src.services.evidence_repository import EvidenceRepository, EvidenceScope, PunchTimes, WorkerScope
from src.services.session_errors import EvidenceWarning

logger = logging.getLogger(__name__)

DEFAULT_EVIDENCE_TIMEOUT = 5.0


@dataclass(frozen=True)
class TaskCompletion:
    kind: TaskKind
    completed: bool
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "label": task_label(self.kind),
            "completed": self.completed,
            "count": self.count,
        }


@dataclass(frozen=True)
class CompletionVector:
    """Per-task completion for one worker-day, in checklist order."""

    worker_id: str
    day: date
    role: str
    tasks: Tuple[TaskCompletion, ...]
    punch_in: Optional[datetime] = None
    punch_out: Optional[datetime] = None
    warnings: Tuple[EvidenceWarning, ...] = field(default_factory=tuple)

    @property
    def completed_count(self) -> int:
        return sum(1 for task in self.tasks if task.completed)

    @property
    def total_count(self) -> int:
        return len(self.tasks)

    def task(self, kind: TaskKind) -> Optional[TaskCompletion]:
        for task in self.tasks:
            if task.kind == kind:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "date": self.day.isoformat(),
            "role": self.role,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "tasks": [task.to_dict() for task in self.tasks],
            "punch_in": self.punch_in.isoformat() if self.punch_in else None,
            "punch_out": self.punch_out.isoformat() if self.punch_out else None,
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


class TaskCompletionEvaluator:
    """Builds completion vectors from an EvidenceRepository."""

    def __init__(self, repository: EvidenceRepository, timeout: float = DEFAULT_EVIDENCE_TIMEOUT):
        self.repository = repository
        self.timeout = timeout

    async def evaluate(
        self,
        worker_id: str,
        day: date,
        role: RoleLike,
        market_id: Optional[str] = None,
        checklist: Optional[Sequence[TaskKind]] = None,
    ) -> CompletionVector:
        """
        Evaluate the checklist of one worker-day.

        Args:
            worker_id: Worker being evaluated
            day: Civil reporting date
            role: Worker role; unknown roles use the default checklist
            market_id: Narrow worker evidence to one market
            checklist: Explicit checklist (e.g. the closed-day list); defaults
                to the role's checklist

        Returns:
            CompletionVector with warnings for every source that failed
        """
        warnings: List[EvidenceWarning] = []
        if not is_known_role(role):
            logger.warning(f"Unknown role {role!r} for worker {worker_id}, using {DEFAULT_ROLE.value} checklist")
            warnings.append(
                EvidenceWarning(
                    kind="unknown_role",
                    reason=f"role {role!r} not recognised; using {DEFAULT_ROLE.value} checklist",
                )
            )

        checklist = tuple(checklist) if checklist is not None else checklist_for(role)
        sources = sources_for_checklist(checklist)
        scope = WorkerScope(worker_id=worker_id, market_id=market_id)

        punch_result, *count_results = await asyncio.gather(
            self._punch_times(worker_id, day, market_id),
            *[self.count_evidence(scope, day, source) for source in sources],
        )

        punches, punch_warning = punch_result
        if punch_warning:
            warnings.append(punch_warning)

        counts: Dict[EvidenceSource, int] = {}
        for source, (count, warning) in zip(sources, count_results):
            counts[source] = count
            if warning:
                warnings.append(warning)

        tasks = tuple(self._complete(kind, counts, punches) for kind in checklist)
        resolved = resolve_role(role) or DEFAULT_ROLE

        return CompletionVector(
            worker_id=worker_id,
            day=day,
            role=resolved.value,
            tasks=tasks,
            punch_in=punches.punch_in,
            punch_out=punches.punch_out,
            warnings=tuple(warnings),
        )

    @staticmethod
    def _complete(kind: TaskKind, counts: Dict[EvidenceSource, int], punches: PunchTimes) -> TaskCompletion:
        if kind in PUNCH_TASKS:
            stamp = punches.punch_in if kind == TaskKind.PUNCH_IN else punches.punch_out
            return TaskCompletion(kind=kind, completed=stamp is not None, count=1 if stamp else 0)

        # Multi-source tasks are OR-merged once every source has answered.
        per_source = [counts.get(source, 0) for source in sources_for(kind)]
        return TaskCompletion(kind=kind, completed=any(c > 0 for c in per_source), count=sum(per_source))

    async def count_evidence(self, scope: EvidenceScope, day: date, source: EvidenceSource) -> Tuple[int, Optional[EvidenceWarning]]:
        try:
            count = await asyncio.wait_for(
                self.repository.fetch_evidence(scope, day, source), timeout=self.timeout
            )
            return max(0, int(count or 0)), None
        except asyncio.TimeoutError:
            logger.warning(f"Evidence query timed out after {self.timeout}s: {source.value} for {scope.key} on {day}")
            return 0, EvidenceWarning(
                kind="evidence_timeout", source=source.value, reason=f"no answer within {self.timeout}s"
            )
        except Exception as e:
            logger.warning(f"Evidence query failed: {source.value} for {scope.key} on {day}: {e}")
            return 0, EvidenceWarning(kind="evidence_unavailable", source=source.value, reason=str(e))

    async def _punch_times(self, worker_id: str, day: date, market_id: Optional[str] = None) -> Tuple[PunchTimes, Optional[EvidenceWarning]]:
        try:
            punches = await asyncio.wait_for(
                self.repository.fetch_punch_times(worker_id, day, market_id), timeout=self.timeout
            )
            return punches or PunchTimes(), None
        except asyncio.TimeoutError:
            logger.warning(f"Punch time query timed out after {self.timeout}s for worker {worker_id} on {day}")
            return PunchTimes(), EvidenceWarning(
                kind="evidence_timeout", source="punch_times", reason=f"no answer within {self.timeout}s"
            )
        except Exception as e:
            logger.warning(f"Punch time query failed for worker {worker_id} on {day}: {e}")
            return PunchTimes(), EvidenceWarning(kind="punch_times_unavailable", source="punch_times", reason=str(e))
