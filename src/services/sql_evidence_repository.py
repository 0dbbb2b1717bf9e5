"""SQLAlchemy-backed EvidenceRepository.

Queries are blocking, so each one runs in the repository's own thread pool
with its own session. The pool is sized to the database connection pool and
lives as long as the repository: ``asyncio.run()`` only waits for the loop's
default executor, so a query abandoned after its timeout finishes in the
background instead of holding up the caller.
"""

import asyncio
import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from src.models import (
    AssetsMoneyRecovery,
    AssetsUsage,
    BDOMarketSubmission,
    BDOStallSubmission,
    Collection,
    EmployeeAllocation,
    Market,
    MarketInspectionUpdate,
    MarketLandSearch,
    MarketLocationVisit,
    MarketSchedule,
    MediaUpload,
    NextDayPlanning,
    NonAvailableCommodity,
    Offer,
    OrganiserFeedback,
    StallConfirmation,
    StallFeedback,
    StallInspection,
    StallSearchUpdate,
    WorkSession,
    Worker,
)
from src.services.checklist import EvidenceSource
from src.services.evidence_repository import (
    EvidenceRepository,
    EvidenceScope,
    MarketInfo,
    MarketScope,
    PunchTimes,
    WorkerDay,
    merge_punches,
)
from src.services.session_errors import EvidenceUnavailable
from src.utils.database import MAX_OVERFLOW, POOL_SIZE, session_scope

logger = logging.getLogger(__name__)

# (model, media_type filter) per source
SOURCE_MODELS: Dict[EvidenceSource, Tuple[type, Optional[str]]] = {
    EvidenceSource.STALL_CONFIRMATIONS: (StallConfirmation, None),
    EvidenceSource.MEDIA_OUTSIDE_RATES: (MediaUpload, "outside_rates"),
    EvidenceSource.MEDIA_RATE_BOARD: (MediaUpload, "rate_board"),
    EvidenceSource.MEDIA_MARKET_VIDEO: (MediaUpload, "market_video"),
    EvidenceSource.MEDIA_CLEANING_VIDEO: (MediaUpload, "cleaning_video"),
    EvidenceSource.MEDIA_CUSTOMER_FEEDBACK: (MediaUpload, "customer_feedback"),
    EvidenceSource.OFFERS: (Offer, None),
    EvidenceSource.NON_AVAILABLE_COMMODITIES: (NonAvailableCommodity, None),
    EvidenceSource.ORGANISER_FEEDBACK: (OrganiserFeedback, None),
    EvidenceSource.NEXT_DAY_PLANNING: (NextDayPlanning, None),
    EvidenceSource.STALL_INSPECTIONS: (StallInspection, None),
    EvidenceSource.COLLECTIONS: (Collection, None),
    EvidenceSource.BDO_MARKET_SUBMISSIONS: (BDOMarketSubmission, None),
    EvidenceSource.BDO_STALL_SUBMISSIONS: (BDOStallSubmission, None),
    EvidenceSource.LOCATION_VISITS: (MarketLocationVisit, None),
    EvidenceSource.EMPLOYEE_ALLOCATIONS: (EmployeeAllocation, None),
    EvidenceSource.LAND_SEARCH: (MarketLandSearch, None),
    EvidenceSource.STALL_SEARCH: (StallSearchUpdate, None),
    EvidenceSource.MONEY_RECOVERY: (AssetsMoneyRecovery, None),
    EvidenceSource.ASSETS_USAGE: (AssetsUsage, None),
    EvidenceSource.STALL_FEEDBACK: (StallFeedback, None),
    EvidenceSource.INSPECTION_UPDATES: (MarketInspectionUpdate, None),
}


class SqlEvidenceRepository(EvidenceRepository):
    """Reads evidence, sessions and markets through SQLAlchemy."""

    def __init__(self, session_factory: Optional[Callable] = None, max_workers: int = POOL_SIZE + MAX_OVERFLOW):
        """
        Args:
            session_factory: Zero-argument callable returning a Session
                (defaults to ``src.utils.database.get_session``)
            max_workers: Concurrent queries; more would only queue for a
                pooled connection
        """
        self.session_factory = session_factory
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="evidence-query")

    def _session(self):
        return session_scope(self.session_factory)

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, fn, *args)

    def close(self) -> None:
        """Stop taking new queries. Queries still running are not waited for."""
        self.executor.shutdown(wait=False)

    # Evidence ----------------------------------------------------------------

    async def fetch_evidence(self, scope: EvidenceScope, day: date, source: EvidenceSource) -> int:
        return await self._run(self._count, scope, day, source)

    def _count(self, scope: EvidenceScope, day: date, source: EvidenceSource) -> int:
        try:
            model, media_type = SOURCE_MODELS[source]
        except KeyError:
            raise EvidenceUnavailable(source.value, "no table mapped")

        try:
            with self._session() as session:
                query = session.query(func.count(model.id)).filter(model.record_date == day)
                if media_type:
                    query = query.filter(model.media_type == media_type)

                if isinstance(scope, MarketScope):
                    query = query.filter(model.market_id == scope.market_id)
                else:
                    query = query.filter(model.user_id == scope.worker_id)
                    if scope.market_id is not None:
                        query = query.filter(model.market_id == scope.market_id)

                return query.scalar() or 0
        except SQLAlchemyError as e:
            raise EvidenceUnavailable(source.value, str(e)) from e

    # Sessions ----------------------------------------------------------------

    async def fetch_punch_times(self, worker_id: str, day: date, market_id: Optional[str] = None) -> PunchTimes:
        return await self._run(self._punch_times, worker_id, day, market_id)

    def _punch_times(self, worker_id: str, day: date, market_id: Optional[str]) -> PunchTimes:
        with self._session() as session:
            query = session.query(
                WorkSession.punch_in_time.label("punch_in"),
                WorkSession.punch_out_time.label("punch_out"),
            ).filter(WorkSession.user_id == worker_id, WorkSession.session_date == day)
            if market_id is not None:
                query = query.filter(WorkSession.market_id == market_id)
            rows = query.all()

        # One session per market; unscoped lookups span all of them
        return merge_punches(rows)

    async def role_for(self, worker_id: str) -> Optional[str]:
        return await self._run(self._role_for, worker_id)

    def _role_for(self, worker_id: str) -> Optional[str]:
        with self._session() as session:
            return session.query(Worker.role).filter(Worker.id == worker_id).scalar()

    async def list_worker_days(self, market_id: str, day: date) -> List[WorkerDay]:
        return await self._run(self._worker_days, market_id, day)

    def _worker_days(self, market_id: str, day: date) -> List[WorkerDay]:
        with self._session() as session:
            rows = (
                session.query(WorkSession, Worker.full_name, Worker.role)
                .outerjoin(Worker, Worker.id == WorkSession.user_id)
                .filter(WorkSession.market_id == market_id, WorkSession.session_date == day)
                .order_by(WorkSession.user_id)
                .all()
            )
            return [
                WorkerDay(
                    worker_id=work_session.user_id,
                    role=work_session.role or worker_role,
                    day=work_session.session_date,
                    market_id=work_session.market_id,
                    punch_in=work_session.punch_in_time,
                    punch_out=work_session.punch_out_time,
                    worker_name=full_name,
                )
                for work_session, full_name, worker_role in rows
            ]

    # Markets -----------------------------------------------------------------

    async def list_markets(self) -> List[MarketInfo]:
        return await self._run(self._markets)

    def _markets(self) -> List[MarketInfo]:
        with self._session() as session:
            extra_dates: Dict[str, Set[date]] = defaultdict(set)
            for market_id, schedule_date in session.query(MarketSchedule.market_id, MarketSchedule.schedule_date):
                extra_dates[market_id].add(schedule_date)

            return [
                MarketInfo(
                    market_id=market.id,
                    name=market.name,
                    city=market.city,
                    day_of_week=market.day_of_week,
                    is_active=bool(market.is_active),
                    scheduled_dates=frozenset(extra_dates.get(market.id, ())),
                )
                for market in session.query(Market).order_by(Market.name).all()
            ]

    async def last_activity_at(self, market_id: str, day: date) -> Optional[datetime]:
        return await self._run(self._last_activity, market_id, day)

    def _last_activity(self, market_id: str, day: date) -> Optional[datetime]:
        latest = None
        with self._session() as session:
            for model in {model for model, _ in SOURCE_MODELS.values()}:
                value = (
                    session.query(func.max(model.created_at))
                    .filter(model.market_id == market_id, model.record_date == day)
                    .scalar()
                )
                if value and (latest is None or value > latest):
                    latest = value
        return latest
