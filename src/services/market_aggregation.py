"""Market-level rollups for the live monitoring view.

A rollup fans the worker-day evaluation out over every worker session at a
market, and separately counts evidence scoped to the market itself (stall
confirmations, media, collections logged there by anyone). Rollups are
rebuilt on every request and never stored.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from src.models.worker import WorkerRole
from src.services.checklist import EvidenceSource, checklist_for, sources_for_checklist
from src.services.evidence_repository import EvidenceRepository, MarketInfo, MarketScope, WorkerDay
from src.services.schedule_gate import ScheduleGate
from src.services.session_errors import EvidenceWarning
from src.services.session_status import SessionStatus, WorkerDayEvaluation
from src.services.task_completion import TaskCompletionEvaluator

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 20

# Evidence counted per market: everything an employee logs at a market.
MARKET_SOURCES: Tuple[EvidenceSource, ...] = sources_for_checklist(checklist_for(WorkerRole.EMPLOYEE))

WorkerEvaluator = Callable[[WorkerDay, datetime], Awaitable[WorkerDayEvaluation]]


def _initials(name: Optional[str]) -> str:
    if not name:
        return "?"
    return "".join(part[0] for part in name.split() if part).upper()[:2] or "?"


@dataclass(frozen=True)
class WorkerDaySummary:
    """One row of a market rollup."""

    worker_id: str
    worker_name: Optional[str]
    role: Optional[str]
    status: Optional[SessionStatus]
    completed_count: int = 0
    total_count: int = 0
    punch_in: Optional[datetime] = None
    punch_out: Optional[datetime] = None
    warnings: Tuple[EvidenceWarning, ...] = field(default_factory=tuple)
    error: Optional[str] = None

    @classmethod
    def from_evaluation(cls, worker_day: WorkerDay, evaluation: WorkerDayEvaluation) -> "WorkerDaySummary":
        return cls(
            worker_id=worker_day.worker_id,
            worker_name=worker_day.worker_name,
            role=evaluation.role,
            status=evaluation.status,
            completed_count=evaluation.completed_count,
            total_count=evaluation.total_count,
            punch_in=evaluation.punch_in or worker_day.punch_in,
            punch_out=evaluation.punch_out or worker_day.punch_out,
            warnings=evaluation.warnings,
        )

    @classmethod
    def failed(cls, worker_day: WorkerDay, error: Exception) -> "WorkerDaySummary":
        return cls(
            worker_id=worker_day.worker_id,
            worker_name=worker_day.worker_name,
            role=worker_day.role,
            status=None,
            punch_in=worker_day.punch_in,
            punch_out=worker_day.punch_out,
            error=str(error) or error.__class__.__name__,
        )

    @property
    def initials(self) -> str:
        return _initials(self.worker_name)

    @property
    def has_error(self) -> bool:
        return self.error is not None

    def duration_minutes(self, now: datetime) -> Optional[int]:
        """Minutes worked: punch-in to punch-out, or to ``now`` while still on shift."""
        if self.punch_in is None:
            return None
        end = self.punch_out or now
        return max(0, int((end - self.punch_in).total_seconds() // 60))

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "initials": self.initials,
            "role": self.role,
            "status": self.status.value if self.status else None,
            "completed_count": self.completed_count,
            "total_count": self.total_count,
            "punch_in": self.punch_in.isoformat() if self.punch_in else None,
            "punch_out": self.punch_out.isoformat() if self.punch_out else None,
            "duration_minutes": self.duration_minutes(now) if now else None,
            "warnings": [warning.to_dict() for warning in self.warnings],
            "error": self.error,
        }


@dataclass(frozen=True)
class MarketRollup:
    """Per-market, per-date view of every worker plus market-wide totals."""

    market_id: str
    market_name: str
    city: Optional[str]
    day: date
    scheduled: bool
    evaluated_at: Optional[datetime] = None
    workers: Tuple[WorkerDaySummary, ...] = field(default_factory=tuple)
    evidence_totals: Dict[str, int] = field(default_factory=dict)
    last_activity_at: Optional[datetime] = None
    warnings: Tuple[EvidenceWarning, ...] = field(default_factory=tuple)

    @classmethod
    def unscheduled(cls, market: MarketInfo, day: date, evaluated_at: Optional[datetime] = None) -> "MarketRollup":
        return cls(
            market_id=market.market_id,
            market_name=market.name,
            city=market.city,
            day=day,
            scheduled=False,
            evaluated_at=evaluated_at,
        )

    @property
    def attendance(self) -> int:
        """Workers who punched in."""
        return sum(1 for worker in self.workers if worker.punch_in is not None)

    @property
    def status_counts(self) -> Dict[str, int]:
        counts = Counter(worker.status.value for worker in self.workers if worker.status)
        errors = sum(1 for worker in self.workers if worker.has_error)
        if errors:
            counts["error"] = errors
        return dict(counts)

    @property
    def worker_names(self) -> List[str]:
        return [worker.worker_name for worker in self.workers if worker.worker_name]

    @property
    def stall_confirmations(self) -> int:
        return self.evidence_totals.get(EvidenceSource.STALL_CONFIRMATIONS.value, 0)

    @property
    def media_uploads(self) -> int:
        return sum(count for source, count in self.evidence_totals.items() if source.startswith("media:"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_id": self.market_id,
            "market_name": self.market_name,
            "city": self.city,
            "date": self.day.isoformat(),
            "scheduled": self.scheduled,
            "evaluated_at": self.evaluated_at.isoformat() if self.evaluated_at else None,
            "attendance": self.attendance,
            "status_counts": self.status_counts,
            "stall_confirmations": self.stall_confirmations,
            "media_uploads": self.media_uploads,
            "evidence_totals": dict(self.evidence_totals),
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "workers": [worker.to_dict(self.evaluated_at) for worker in self.workers],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


class MarketAggregationEngine:
    """Builds MarketRollups concurrently across workers and markets."""

    def __init__(
        self,
        repository: EvidenceRepository,
        evaluator: TaskCompletionEvaluator,
        gate: ScheduleGate,
        evaluate_worker: WorkerEvaluator,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        """
        Args:
            repository: Evidence source
            evaluator: Used for the bounded market-scoped count queries
            gate: Decides which markets are reportable on a date
            evaluate_worker: Coroutine that evaluates one WorkerDay at ``now``
            max_concurrency: Upper bound on worker evaluations in flight
        """
        self.repository = repository
        self.evaluator = evaluator
        self.gate = gate
        self.evaluate_worker = evaluate_worker
        self.max_concurrency = max(1, max_concurrency)

    async def evaluate_market(
        self,
        market: MarketInfo,
        day: date,
        now: datetime,
        semaphore: Optional[asyncio.Semaphore] = None,
    ) -> MarketRollup:
        """
        Roll up one market for one date.

        Args:
            market: Market to evaluate
            day: Civil reporting date
            now: Aware evaluation instant
            semaphore: Shared bound when called for many markets at once

        Returns:
            MarketRollup; a degenerate one (scheduled=False, no workers) when
            the market is not reportable on ``day``
        """
        if not self.gate.is_scheduled(market, day):
            logger.info(f"Market {market.market_id} not scheduled on {day}, returning empty rollup")
            return MarketRollup.unscheduled(market, day, evaluated_at=now)

        semaphore = semaphore or asyncio.Semaphore(self.max_concurrency)
        worker_days = await self.repository.list_worker_days(market.market_id, day)

        summaries, (totals, total_warnings), (last_activity, activity_warning) = await asyncio.gather(
            asyncio.gather(*[self._summarize(worker_day, now, semaphore) for worker_day in worker_days]),
            self._market_totals(market.market_id, day),
            self._last_activity(market.market_id, day),
        )

        warnings = list(total_warnings)
        if activity_warning:
            warnings.append(activity_warning)

        failed = sum(1 for summary in summaries if summary.has_error)
        logger.info(
            f"Market {market.market_id} on {day}: {len(summaries)} workers evaluated"
            + (f", {failed} failed" if failed else "")
        )

        return MarketRollup(
            market_id=market.market_id,
            market_name=market.name,
            city=market.city,
            day=day,
            scheduled=True,
            evaluated_at=now,
            workers=tuple(summaries),
            evidence_totals=totals,
            last_activity_at=last_activity,
            warnings=tuple(warnings),
        )

    async def evaluate_live_markets(self, day: date, now: datetime) -> List[MarketRollup]:
        """Roll up every market scheduled on ``day``; empty when none are."""
        markets = [market for market in await self.repository.list_markets() if self.gate.is_scheduled(market, day)]
        if not markets:
            logger.info(f"No markets scheduled on {day}")
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        rollups = await asyncio.gather(*[self.evaluate_market(market, day, now, semaphore) for market in markets])
        return sorted(rollups, key=lambda rollup: rollup.market_name)

    async def _summarize(self, worker_day: WorkerDay, now: datetime, semaphore: asyncio.Semaphore) -> WorkerDaySummary:
        async with semaphore:
            try:
                evaluation = await self.evaluate_worker(worker_day, now)
            except Exception as e:
                logger.error(f"Error evaluating worker {worker_day.worker_id} on {worker_day.day}: {e}", exc_info=True)
                return WorkerDaySummary.failed(worker_day, e)
        return WorkerDaySummary.from_evaluation(worker_day, evaluation)

    async def _market_totals(self, market_id: str, day: date) -> Tuple[Dict[str, int], List[EvidenceWarning]]:
        scope = MarketScope(market_id=market_id)
        results = await asyncio.gather(
            *[self.evaluator.count_evidence(scope, day, source) for source in MARKET_SOURCES]
        )
        totals: Dict[str, int] = {}
        warnings: List[EvidenceWarning] = []
        for source, (count, warning) in zip(MARKET_SOURCES, results):
            totals[source.value] = count
            if warning:
                warnings.append(warning)
        return totals, warnings

    async def _last_activity(self, market_id: str, day: date) -> Tuple[Optional[datetime], Optional[EvidenceWarning]]:
        try:
            last = await asyncio.wait_for(
                self.repository.last_activity_at(market_id, day), timeout=self.evaluator.timeout
            )
            return last, None
        except asyncio.TimeoutError:
            logger.warning(f"Last activity query timed out for market {market_id} on {day}")
            return None, EvidenceWarning(kind="evidence_timeout", source="last_activity", reason="timed out")
        except Exception as e:
            logger.warning(f"Last activity query failed for market {market_id} on {day}: {e}")
            return None, EvidenceWarning(kind="evidence_unavailable", source="last_activity", reason=str(e))
