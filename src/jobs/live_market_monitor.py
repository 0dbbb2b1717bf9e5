"""
Live Market Monitor Job

Scheduled job that re-evaluates every market scheduled today and refreshes
the status hint cache, so the monitoring dashboard always has a recent
rollup to show. Runs every MONITOR_INTERVAL_MINUTES while the scheduler is up.
"""

import logging
import asyncio
from collections import Counter
from datetime import datetime, date
from typing import Dict, List, Optional

from src.services.market_aggregation import MarketRollup
from src.services.session_engine import SessionEngine, get_session_engine
from src.utils.cache_manager import CacheManager, get_cache_manager
from src.utils.timezone import now_reporting, reporting_date

logger = logging.getLogger(__name__)


class LiveMarketMonitorJob:
    """Evaluates today's markets and refreshes the status hints."""

    # A scheduled market with nobody punched in after this hour is flagged
    NO_ATTENDANCE_ALERT_HOUR = 10

    def __init__(self, engine: Optional[SessionEngine] = None, cache: Optional[CacheManager] = None):
        """Initialize the job with the session engine and hint cache."""
        self.engine = engine or get_session_engine()
        self.cache = cache or get_cache_manager()

    def refresh_hints(self, rollups: List[MarketRollup], day: date, now: datetime) -> int:
        """
        Store each rollup as a market hint.

        Returns:
            Number of hints stored
        """
        stored = 0
        for rollup in rollups:
            if self.cache.set_hint(
                CacheManager.market_key(rollup.market_id, day), rollup.to_dict(), day, now=now, tz=self.engine.tz
            ):
                stored += 1
        return stored

    def find_markets_without_attendance(self, rollups: List[MarketRollup], now: datetime) -> List[str]:
        """Scheduled markets where nobody has punched in by the alert hour."""
        local_now = now.astimezone(self.engine.tz)
        if local_now.hour < self.NO_ATTENDANCE_ALERT_HOUR:
            return []
        return [rollup.market_name for rollup in rollups if rollup.scheduled and rollup.attendance == 0]

    def run(self, now: Optional[datetime] = None, day: Optional[date] = None) -> Dict:
        """
        Execute the Live Market Monitor job.

        Args:
            now: Aware evaluation instant (defaults to the current time)
            day: Reporting date (defaults to the date ``now`` falls on)

        Returns:
            Dictionary with job execution statistics
        """
        start_time = datetime.now()
        logger.info(f"Starting Live Market Monitor job at {start_time}")

        try:
            now = now or now_reporting(self.engine.tz)
            day = day or reporting_date(now, self.engine.tz)

            rollups = asyncio.run(self.engine.evaluate_live_markets(day, now))
            hints_stored = self.refresh_hints(rollups, day, now)

            status_totals = Counter()
            for rollup in rollups:
                status_totals.update(rollup.status_counts)

            idle_markets = self.find_markets_without_attendance(rollups, now)
            if idle_markets:
                logger.warning(f"No attendance yet at {len(idle_markets)} market(s): {', '.join(idle_markets)}")

            warning_count = sum(
                len(rollup.warnings) + sum(len(worker.warnings) for worker in rollup.workers) for rollup in rollups
            )
            if warning_count:
                logger.warning(f"{warning_count} evidence warning(s) while evaluating {day}")

            end_time = datetime.now()
            duration = (end_time - start_time).total_seconds()

            stats = {
                "success": True,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "duration_seconds": duration,
                "date": day.isoformat(),
                "closed_day": self.engine.gate.is_closed_day(day),
                "markets_evaluated": len(rollups),
                "workers_evaluated": sum(len(rollup.workers) for rollup in rollups),
                "attendance": sum(rollup.attendance for rollup in rollups),
                "status_counts": dict(status_totals),
                "markets_without_attendance": idle_markets,
                "evidence_warnings": warning_count,
                "hints_stored": hints_stored,
            }

            logger.info(f"Live Market Monitor job completed successfully in {duration:.2f}s")
            logger.info(f"Stats: {stats}")

            return stats

        except Exception as e:
            end_time = datetime.now()
            duration = (end_time - start_time).total_seconds()

            logger.error(
                f"Live Market Monitor job failed after {duration:.2f}s: {e}",
                exc_info=True,
            )

            return {
                "success": False,
                "start_time": start_time.isoformat(),
                "end_time": end_time.isoformat(),
                "duration_seconds": duration,
                "error": str(e),
            }


def run_live_market_monitor():
    """
    Entry point for the Live Market Monitor job.
    This function is called by the scheduler.
    """
    try:
        job = LiveMarketMonitorJob()
        return job.run()
    except Exception as e:
        logger.error(
            f"Failed to initialize or run Live Market Monitor job: {e}",
            exc_info=True,
        )
        return {
            "success": False,
            "error": str(e),
            "start_time": datetime.now().isoformat(),
            "end_time": datetime.now().isoformat(),
            "duration_seconds": 0,
        }


if __name__ == "__main__":
    # Allow running job manually for testing
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    print("Running Live Market Monitor job manually...")
    stats = run_live_market_monitor()
    print(f"\nJob completed: {stats}")
