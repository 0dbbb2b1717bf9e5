"""Tests for the monitor scheduler."""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch

from src.services import scheduler as scheduler_module
from src.services.scheduler import MonitorScheduler, get_scheduler, start_scheduler, stop_scheduler
from tests.conftest import IST, TUESDAY, ist


@pytest.fixture
def job():
    job = MagicMock()
    job.engine.tz = IST
    job.run.return_value = {"success": True, "status_counts": {"incomplete_expired": 3}}
    return job


@pytest.fixture
def monitor(job):
    return MonitorScheduler(job_factory=lambda: job, interval_minutes=5)


class TestMonitorScheduler:
    """Test scheduled monitor tasks."""

    def test_schedules_refresh_and_sweep(self, monitor):
        """Test both recurring jobs are registered."""
        jobs = monitor.scheduler.get_jobs()

        assert len(jobs) == 2
        assert jobs[0].interval == 5
        assert jobs[0].unit == "minutes"
        assert jobs[1].unit == "days"

    def test_refresh_stores_last_stats(self, monitor, job):
        """Test the refresh keeps the latest stats."""
        stats = monitor.refresh_live_markets()

        assert stats["success"] is True
        assert monitor.last_stats is stats
        job.run.assert_called_once_with()

    def test_sweep_evaluates_yesterday(self, monitor, job):
        """Test the sweep evaluates the previous reporting date."""
        now = ist(date(2025, 1, 15), 0, 5)

        with patch("src.services.scheduler.now_reporting", return_value=now):
            stats = monitor.sweep_previous_day()

        job.run.assert_called_once_with(now=now, day=TUESDAY)
        assert stats["status_counts"]["incomplete_expired"] == 3

    def test_task_errors_are_contained(self, monitor, job):
        """Test a failing task does not escape the scheduler loop."""
        job.run.side_effect = RuntimeError("boom")

        monitor._run_sync(monitor.refresh_live_markets)

    def test_stop_clears_jobs(self, monitor):
        """Test stopping removes every scheduled job."""
        monitor.stop()

        assert monitor.running is False
        assert monitor.scheduler.get_jobs() == []

    def test_start_twice(self, monitor):
        """Test a second start is ignored."""
        with patch("src.services.scheduler.Thread") as thread_class:
            monitor.start()
            monitor.start()

        thread_class.assert_called_once()
        assert monitor.running is True


class TestGlobalScheduler:
    """Test the module-level scheduler."""

    def test_start_and_stop(self, monkeypatch):
        """Test the global scheduler lifecycle."""
        monkeypatch.setattr(scheduler_module, "scheduler", None)
        instance = MagicMock()

        with patch("src.services.scheduler.MonitorScheduler", return_value=instance):
            start_scheduler()
            start_scheduler()

        assert get_scheduler() is instance
        instance.start.assert_called_once()

        stop_scheduler()

        instance.stop.assert_called_once()
        assert get_scheduler() is None
