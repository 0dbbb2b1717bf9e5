"""Scheduled live market monitoring."""

import logging
import schedule
import time
from datetime import timedelta
from threading import Thread
from typing import Callable, Optional

from config.settings import settings
from src.jobs.live_market_monitor import LiveMarketMonitorJob
from src.utils.timezone import now_reporting, reporting_date


logger = logging.getLogger(__name__)


class MonitorScheduler:
    """Scheduler for the periodic live market refresh and the post-deadline sweep."""

    def __init__(self, job_factory: Optional[Callable[[], LiveMarketMonitorJob]] = None, interval_minutes: Optional[int] = None):
        """Initialize scheduler.

        Args:
            job_factory: Builds the monitor job for each run
            interval_minutes: Refresh interval (defaults to MONITOR_INTERVAL_MINUTES)
        """
        self.job_factory = job_factory or LiveMarketMonitorJob
        self.interval_minutes = interval_minutes or settings.agent.monitor_interval_minutes
        self.scheduler = schedule.Scheduler()
        self.running = False
        self.thread = None
        self.last_stats = None

        self._setup_schedules()

    def _setup_schedules(self):
        """Set up scheduled tasks."""
        # Live market refresh throughout the day
        self.scheduler.every(self.interval_minutes).minutes.do(self._run_sync, self.refresh_live_markets)

        # Shortly after midnight in the reporting zone, re-evaluate the day that
        # just closed so unfinished sessions are reported as expired
        self.scheduler.every().day.at("00:05", settings.reporting.timezone).do(
            self._run_sync, self.sweep_previous_day
        )

        logger.info(f"Scheduled tasks configured (live refresh every {self.interval_minutes} min)")

    def _run_sync(self, sync_func, *args, **kwargs):
        """Run synchronous function."""
        try:
            sync_func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error running scheduled task {sync_func.__name__}: {e}")

    def refresh_live_markets(self):
        """Evaluate today's markets and refresh their hints."""
        self.last_stats = self.job_factory().run()
        if not self.last_stats.get("success"):
            logger.error(f"Live market refresh failed: {self.last_stats.get('error')}")
        return self.last_stats

    def sweep_previous_day(self):
        """Evaluate yesterday's markets after their deadline has passed."""
        job = self.job_factory()
        now = now_reporting(job.engine.tz)
        yesterday = reporting_date(now, job.engine.tz) - timedelta(days=1)
        stats = job.run(now=now, day=yesterday)
        expired = stats.get("status_counts", {}).get("incomplete_expired", 0)
        logger.info(f"Closed {yesterday}: {expired} session(s) expired incomplete")
        return stats

    def start(self):
        """Start the scheduler in a background thread."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        self.running = True
        self.thread = Thread(target=self._run_scheduler, daemon=True)
        self.thread.start()
        logger.info("Live market monitor scheduler started")

    def stop(self):
        """Stop the scheduler."""
        self.running = False
        if self.thread:
            self.thread.join(timeout=5)
        self.scheduler.clear()
        logger.info("Live market monitor scheduler stopped")

    def _run_scheduler(self):
        """Run the scheduler loop."""
        while self.running:
            try:
                self.scheduler.run_pending()
                time.sleep(1)
            except Exception as e:
                logger.error(f"Scheduler error: {e}")


# Global scheduler instance
scheduler = None


def start_scheduler():
    """Start the global scheduler."""
    global scheduler
    if scheduler is None:
        scheduler = MonitorScheduler()
        scheduler.start()
        logger.info("Global monitor scheduler started")
    else:
        logger.warning("Scheduler already started")


def stop_scheduler():
    """Stop the global scheduler."""
    global scheduler
    if scheduler:
        scheduler.stop()
        scheduler = None
        logger.info("Global monitor scheduler stopped")


def get_scheduler() -> Optional[MonitorScheduler]:
    """Get the global scheduler instance."""
    return scheduler
