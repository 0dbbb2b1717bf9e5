"""Evidence repository interface.

The evaluator never talks to a store directly. Everything it needs (counts per
evidence source, punch times, role lookups, the workers at a market) comes
through ``EvidenceRepository``. Implementations:

- ``InMemoryEvidenceRepository`` (this module): dict-backed, for tests and
  hosts that already hold the data in memory.
- ``SqlEvidenceRepository`` (``src.services.sql_evidence_repository``):
  SQLAlchemy-backed.

Adapters raise on failure. Timeouts and fail-open-to-zero are applied by the
caller so every adapter gets the same policy.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from src.services.checklist import EvidenceSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerScope:
    """Evidence logged by one worker, optionally narrowed to one market."""

    worker_id: str
    market_id: Optional[str] = None

    @property
    def key(self) -> str:
        return f"worker:{self.worker_id}:{self.market_id or '*'}"


@dataclass(frozen=True)
class MarketScope:
    """Evidence logged at one market by anyone."""

    market_id: str

    @property
    def key(self) -> str:
        return f"market:{self.market_id}"


EvidenceScope = Union[WorkerScope, MarketScope]


@dataclass(frozen=True)
class PunchTimes:
    punch_in: Optional[datetime] = None
    punch_out: Optional[datetime] = None


@dataclass(frozen=True)
class WorkerDay:
    """One worker's reporting obligation for one date."""

    worker_id: str
    role: Optional[str]
    day: date
    market_id: Optional[str] = None
    punch_in: Optional[datetime] = None
    punch_out: Optional[datetime] = None
    worker_name: Optional[str] = None


def merge_punches(sessions: Iterable) -> PunchTimes:
    """Earliest punch-in and latest punch-out over ``sessions``.

    Accepts anything with ``punch_in``/``punch_out`` attributes.
    """
    sessions = list(sessions)
    punch_ins = [s.punch_in for s in sessions if s.punch_in is not None]
    punch_outs = [s.punch_out for s in sessions if s.punch_out is not None]
    return PunchTimes(
        punch_in=min(punch_ins) if punch_ins else None,
        punch_out=max(punch_outs) if punch_outs else None,
    )


@dataclass(frozen=True)
class MarketInfo:
    """Market schedule facts needed to decide whether a day is reportable."""

    market_id: str
    name: str
    city: Optional[str] = None
    # Python weekday (Monday=0); None when the market has no regular day
    day_of_week: Optional[int] = None
    is_active: bool = True
    scheduled_dates: FrozenSet[date] = frozenset()


class EvidenceRepository(ABC):
    """Read-only access to evidence stores."""

    @abstractmethod
    async def fetch_evidence(
        self, scope: EvidenceScope, day: date, source: EvidenceSource
    ) -> int:
        """Number of qualifying records for ``source`` in ``scope`` on ``day``."""

    @abstractmethod
    async def fetch_punch_times(self, worker_id: str, day: date, market_id: Optional[str] = None) -> PunchTimes:
        """Punch-in/out timestamps of the worker's session on ``day``.

        With ``market_id`` only the session at that market counts; otherwise
        the earliest punch-in and latest punch-out across all sessions.
        """

    @abstractmethod
    async def role_for(self, worker_id: str) -> Optional[str]:
        """Role string of a worker, or None if the worker is unknown."""

    @abstractmethod
    async def list_worker_days(self, market_id: str, day: date) -> List[WorkerDay]:
        """Every worker session at ``market_id`` on ``day``."""

    @abstractmethod
    async def list_markets(self) -> List[MarketInfo]:
        """All markets, active or not."""

    async def get_market(self, market_id: str) -> Optional[MarketInfo]:
        for market in await self.list_markets():
            if market.market_id == market_id:
                return market
        return None

    async def last_activity_at(self, market_id: str, day: date) -> Optional[datetime]:
        """Most recent evidence timestamp at a market on ``day``, if known."""
        return None

    def close(self) -> None:
        """Release adapter resources."""


class InMemoryEvidenceRepository(EvidenceRepository):
    """Dict-backed repository.

    Worker evidence is recorded with ``record()``, which also feeds the
    market-wide total for the market it was logged at. Failures and delays can
    be injected per source to exercise the fail-open path.
    """

    def __init__(self):
        self._worker_counts: Dict[Tuple[str, Optional[str], date, EvidenceSource], int] = {}
        self._market_counts: Dict[Tuple[str, date, EvidenceSource], int] = {}
        self._failures: Dict[Tuple[EvidenceSource, Optional[str]], Exception] = {}
        self._delays: Dict[Tuple[EvidenceSource, Optional[str]], float] = {}
        self._roles: Dict[str, str] = {}
        self._names: Dict[str, str] = {}
        self._sessions: Dict[Tuple[str, date, Optional[str]], WorkerDay] = {}
        self._markets: Dict[str, MarketInfo] = {}
        self._activity: Dict[Tuple[str, date], datetime] = {}

    # Setup ---------------------------------------------------------------

    def add_worker(self, worker_id: str, role: str, name: Optional[str] = None) -> None:
        self._roles[worker_id] = role
        if name:
            self._names[worker_id] = name

    def add_market(self, market: MarketInfo) -> None:
        self._markets[market.market_id] = market

    def add_session(
        self,
        worker_id: str,
        day: date,
        market_id: Optional[str] = None,
        punch_in: Optional[datetime] = None,
        punch_out: Optional[datetime] = None,
    ) -> WorkerDay:
        worker_day = WorkerDay(
            worker_id=worker_id,
            role=self._roles.get(worker_id),
            day=day,
            market_id=market_id,
            punch_in=punch_in,
            punch_out=punch_out,
            worker_name=self._names.get(worker_id),
        )
        self._sessions[(worker_id, day, market_id)] = worker_day
        return worker_day

    def record(
        self,
        worker_id: str,
        day: date,
        source: EvidenceSource,
        count: int = 1,
        market_id: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> None:
        """Record ``count`` pieces of evidence logged by a worker."""
        key = (worker_id, market_id, day, source)
        self._worker_counts[key] = self._worker_counts.get(key, 0) + count
        if market_id:
            market_key = (market_id, day, source)
            self._market_counts[market_key] = self._market_counts.get(market_key, 0) + count
            if at and (self._activity.get((market_id, day)) is None or at > self._activity[(market_id, day)]):
                self._activity[(market_id, day)] = at

    def fail(self, source: EvidenceSource, error: Optional[Exception] = None, worker_id: Optional[str] = None) -> None:
        """Make ``source`` raise, for one worker or (worker_id=None) for everyone."""
        self._failures[(source, worker_id)] = error or RuntimeError(f"{source.value} unavailable")

    def delay(self, source: EvidenceSource, seconds: float, worker_id: Optional[str] = None) -> None:
        self._delays[(source, worker_id)] = seconds

    # EvidenceRepository ----------------------------------------------------

    async def fetch_evidence(self, scope: EvidenceScope, day: date, source: EvidenceSource) -> int:
        worker_id = scope.worker_id if isinstance(scope, WorkerScope) else None

        delay = self._delays.get((source, worker_id), self._delays.get((source, None)))
        if delay:
            await asyncio.sleep(delay)

        error = self._failures.get((source, worker_id)) or self._failures.get((source, None))
        if error is not None:
            raise error

        if isinstance(scope, MarketScope):
            return self._market_counts.get((scope.market_id, day, source), 0)

        if scope.market_id is not None:
            return self._worker_counts.get((scope.worker_id, scope.market_id, day, source), 0)

        return sum(
            count
            for (w_id, _, d, s), count in self._worker_counts.items()
            if w_id == scope.worker_id and d == day and s == source
        )

    async def fetch_punch_times(self, worker_id: str, day: date, market_id: Optional[str] = None) -> PunchTimes:
        worker_days = [
            worker_day
            for (w, d, m), worker_day in self._sessions.items()
            if w == worker_id and d == day and (market_id is None or m == market_id)
        ]
        return merge_punches(worker_days)

    async def role_for(self, worker_id: str) -> Optional[str]:
        return self._roles.get(worker_id)

    async def list_worker_days(self, market_id: str, day: date) -> List[WorkerDay]:
        return [
            worker_day
            for (_, d, _), worker_day in sorted(self._sessions.items(), key=lambda item: item[0][0])
            if d == day and worker_day.market_id == market_id
        ]

    async def list_markets(self) -> List[MarketInfo]:
        return list(self._markets.values())

    async def last_activity_at(self, market_id: str, day: date) -> Optional[datetime]:
        return self._activity.get((market_id, day))
