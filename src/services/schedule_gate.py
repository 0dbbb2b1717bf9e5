"""Decides whether a market or role has a reportable day.

Markets operate on a fixed weekday, plus any one-off dates added to the
market schedule. Configured closed weekdays override both: no market operates
on them, and market-bound roles only get the reduced closed-day checklist.
"""

import logging
from datetime import date
from typing import Iterable, Tuple, Union

from config.settings import WEEKDAY_NAMES
from src.models.worker import WorkerRole
from src.services.checklist import RoleLike, TaskKind, checklist_for, is_market_bound
from src.services.evidence_repository import MarketInfo

logger = logging.getLogger(__name__)


class ScheduleGate:
    """Schedule rules, injected with the deployment's closed weekdays."""

    def __init__(self, closed_weekdays: Iterable[int] = (0,)):
        self.closed_weekdays = frozenset(closed_weekdays)

    @classmethod
    def from_settings(cls, settings=None) -> "ScheduleGate":
        if settings is None:
            from config.settings import settings
        return cls(closed_weekdays=settings.reporting.closed_weekdays)

    def is_closed_day(self, day: date) -> bool:
        return day.weekday() in self.closed_weekdays

    def is_scheduled(self, target: Union[MarketInfo, WorkerRole, str], day: date) -> bool:
        """
        Whether ``target`` has a full reporting day on ``day``.

        Args:
            target: A MarketInfo, or a role (WorkerRole or string)
            day: Civil reporting date

        Returns:
            For markets: active, not a closed day, and either the market's
            weekday or an explicitly scheduled date. For roles: roaming roles
            always; market-bound roles unless the day is closed.
        """
        if isinstance(target, MarketInfo):
            return self._market_scheduled(target, day)
        if not is_market_bound(target):
            return True
        return not self.is_closed_day(day)

    def checklist_for(self, role: RoleLike, day: date) -> Tuple[TaskKind, ...]:
        return checklist_for(role, closed_day=self.is_closed_day(day))

    def _market_scheduled(self, market: MarketInfo, day: date) -> bool:
        if not market.is_active:
            return False
        if self.is_closed_day(day):
            logger.debug(f"Market {market.market_id} skipped: {WEEKDAY_NAMES[day.weekday()]} is a closed day")
            return False
        return market.day_of_week == day.weekday() or day in market.scheduled_dates

    def describe(self) -> str:
        closed = ", ".join(WEEKDAY_NAMES[d].title() for d in sorted(self.closed_weekdays))
        return f"Markets closed on: {closed or 'none'}"
