"""Host-facing entry points for session evaluation.

``SessionEngine`` wires the checklist, evidence repository, completion
evaluator, status computer, schedule gate and market aggregation together and
exposes the four operations a host needs:

- ``evaluate_worker_day``: status of one worker on one date
- ``evaluate_market``: rollup of one market on one date
- ``evaluate_live_markets``: rollups of every market scheduled on a date
- ``is_scheduled``: whether a market or role has a reportable day

Every call recomputes from raw evidence. Callers supply ``now`` explicitly.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime
from typing import List, Optional, Union

from src.models.worker import WorkerRole
from src.services.checklist import RoleLike
from src.services.evidence_repository import EvidenceRepository, MarketInfo, WorkerDay
from src.services.market_aggregation import DEFAULT_MAX_CONCURRENCY, MarketAggregationEngine, MarketRollup
from src.services.schedule_gate import ScheduleGate
from src.services.session_errors import EvidenceWarning, MarketNotFound
from src.services.session_status import (
    WorkerDayEvaluation,
    compute_session_status,
    validate_evaluation_time,
)
from src.services.task_completion import DEFAULT_EVIDENCE_TIMEOUT, TaskCompletionEvaluator
from src.utils.timezone import get_reporting_timezone

logger = logging.getLogger(__name__)


class SessionEngine:
    """Evaluates worker-days and markets against an EvidenceRepository."""

    def __init__(
        self,
        repository: EvidenceRepository,
        gate: Optional[ScheduleGate] = None,
        timeout: float = DEFAULT_EVIDENCE_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        tz=None,
    ):
        self.repository = repository
        self.gate = gate or ScheduleGate()
        self.tz = tz or get_reporting_timezone()
        self.evaluator = TaskCompletionEvaluator(repository, timeout=timeout)
        self.aggregator = MarketAggregationEngine(
            repository,
            self.evaluator,
            self.gate,
            evaluate_worker=self._evaluate_session,
            max_concurrency=max_concurrency,
        )

    @classmethod
    def from_settings(cls, repository: EvidenceRepository, settings=None) -> "SessionEngine":
        """Build an engine from ``config.settings``."""
        if settings is None:
            from config.settings import settings
        reporting = settings.reporting
        return cls(
            repository,
            gate=ScheduleGate(closed_weekdays=reporting.closed_weekdays),
            timeout=reporting.evidence_timeout_seconds,
            max_concurrency=reporting.max_concurrent_evaluations,
            tz=get_reporting_timezone(reporting.timezone),
        )

    async def evaluate_worker_day(
        self,
        worker_id: str,
        role: RoleLike,
        day: date,
        now: datetime,
        market_id: Optional[str] = None,
    ) -> WorkerDayEvaluation:
        """
        Evaluate one worker-day.

        Args:
            worker_id: Worker to evaluate
            role: Worker role; None looks it up through the repository
            day: Civil reporting date
            now: Aware evaluation instant
            market_id: Narrow worker evidence to one market

        Returns:
            WorkerDayEvaluation

        Raises:
            InvalidEvaluationTime: If ``now`` is naive or before ``day`` begins
        """
        validate_evaluation_time(day, now, self.tz)

        lookup_warning = None
        if role is None:
            role, lookup_warning = await self._lookup_role(worker_id)

        checklist = self.gate.checklist_for(role, day)
        vector = await self.evaluator.evaluate(worker_id, day, role, market_id=market_id, checklist=checklist)
        if lookup_warning:
            vector = replace(vector, warnings=(lookup_warning,) + vector.warnings)

        decision = compute_session_status(
            vector.completed_count,
            vector.total_count,
            day,
            now,
            punch_in=vector.punch_in,
            punch_out=vector.punch_out,
            tz=self.tz,
        )
        logger.debug(
            f"Worker {worker_id} on {day}: {decision.status.value} "
            f"({decision.completed_count}/{decision.total_count})"
        )
        return WorkerDayEvaluation.from_parts(vector, decision, market_id=market_id)

    async def evaluate_market(self, market_id: str, day: date, now: datetime) -> MarketRollup:
        """
        Roll up one market.

        Raises:
            MarketNotFound: If no market has ``market_id``
            InvalidEvaluationTime: If ``now`` is naive or before ``day`` begins
        """
        validate_evaluation_time(day, now, self.tz)
        market = await self.repository.get_market(market_id)
        if market is None:
            raise MarketNotFound(market_id)
        return await self.aggregator.evaluate_market(market, day, now)

    async def evaluate_live_markets(self, day: date, now: datetime) -> List[MarketRollup]:
        """Rollups for every market scheduled on ``day``."""
        validate_evaluation_time(day, now, self.tz)
        return await self.aggregator.evaluate_live_markets(day, now)

    def is_scheduled(self, target: Union[MarketInfo, WorkerRole, str], day: date) -> bool:
        return self.gate.is_scheduled(target, day)

    async def _evaluate_session(self, worker_day: WorkerDay, now: datetime) -> WorkerDayEvaluation:
        return await self.evaluate_worker_day(
            worker_day.worker_id,
            worker_day.role,
            worker_day.day,
            now,
            market_id=worker_day.market_id,
        )

    async def _lookup_role(self, worker_id: str):
        try:
            role = await asyncio.wait_for(self.repository.role_for(worker_id), timeout=self.evaluator.timeout)
            return role, None
        except Exception as e:
            logger.warning(f"Role lookup failed for worker {worker_id}: {e}")
            return None, EvidenceWarning(kind="role_lookup_unavailable", source="role", reason=str(e) or "timed out")


# Singleton instance
_session_engine: Optional[SessionEngine] = None


def get_session_engine() -> SessionEngine:
    """Get or create the application engine, backed by the SQL repository."""
    global _session_engine

    if _session_engine is None:
        from src.services.sql_evidence_repository import SqlEvidenceRepository

        _session_engine = SessionEngine.from_settings(SqlEvidenceRepository())

    return _session_engine


def set_session_engine(engine: Optional[SessionEngine]) -> None:
    """Replace the application engine (None resets it)."""
    global _session_engine
    _session_engine = engine


def shutdown_session_engine() -> None:
    """Release the application engine's repository, if one was created."""
    global _session_engine
    if _session_engine is not None:
        _session_engine.repository.close()
        _session_engine = None
