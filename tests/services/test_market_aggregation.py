"""Tests for market rollups."""

import asyncio
import pytest

from src.services.checklist import EvidenceSource, TaskKind
from src.services.evidence_repository import MarketInfo
from src.services.market_aggregation import MarketAggregationEngine, MarketRollup, WorkerDaySummary
from src.services.session_status import SessionStatus
from tests.conftest import MONDAY, TUESDAY, ist


class TestUnscheduledMarkets:
    """Test markets with no reportable day."""

    def test_closed_day_gives_empty_rollup(self, session_engine, repo):
        """Scenario D: a Monday market on a closed Monday has an empty rollup."""
        repo.add_market(MarketInfo(market_id="mkt-mon", name="Ameerpet Market", day_of_week=0))
        repo.add_worker("w-1", "employee")
        repo.add_session("w-1", MONDAY, market_id="mkt-mon", punch_in=ist(MONDAY, 8))

        rollup = asyncio.run(session_engine.evaluate_market("mkt-mon", MONDAY, ist(MONDAY, 12)))

        assert rollup.scheduled is False
        assert rollup.workers == ()
        assert rollup.evidence_totals == {}
        assert rollup.status_counts == {}
        assert rollup.to_dict()["attendance"] == 0

    def test_scheduled_market_without_workers(self, session_engine, tuesday_market):
        """Test a scheduled market nobody reported to."""
        rollup = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 12)))

        assert rollup.scheduled is True
        assert rollup.workers == ()
        assert rollup.attendance == 0
        assert all(count == 0 for count in rollup.evidence_totals.values())
        assert rollup.last_activity_at is None


class TestScheduledMarket:
    """Test rollups of a scheduled market."""

    def test_workers_are_summarised(self, session_engine, repo, tuesday_market, fill_employee_day):
        """Test one complete and one partial worker."""
        fill_employee_day("w-1", TUESDAY, name="Ravi Kumar")
        fill_employee_day("w-2", TUESDAY, name="Sita Devi", skip=(TaskKind.COLLECTIONS, TaskKind.PUNCH_OUT))

        rollup = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 15)))

        by_id = {worker.worker_id: worker for worker in rollup.workers}
        assert by_id["w-1"].status == SessionStatus.COMPLETED
        assert by_id["w-2"].status == SessionStatus.INCOMPLETE
        assert by_id["w-2"].completed_count == 11
        assert rollup.attendance == 2
        assert rollup.status_counts == {"completed": 1, "incomplete": 1}
        assert rollup.worker_names == ["Ravi Kumar", "Sita Devi"]

    def test_punches_at_another_market_do_not_count(self, session_engine, repo, tuesday_market):
        """Test attendance at one market ignores a punch-in logged at another."""
        repo.add_market(MarketInfo(market_id="mkt-2", name="Ameerpet Market", day_of_week=1))
        repo.add_worker("w-1", "employee")
        repo.add_session("w-1", TUESDAY, market_id="mkt-1", punch_in=ist(TUESDAY, 8), punch_out=ist(TUESDAY, 13))
        repo.add_session("w-1", TUESDAY, market_id="mkt-2")

        other = asyncio.run(session_engine.evaluate_market("mkt-2", TUESDAY, ist(TUESDAY, 15)))
        home = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 15)))

        assert other.attendance == 0
        assert other.workers[0].punch_in is None
        assert other.workers[0].completed_count == 0
        assert home.attendance == 1
        assert home.workers[0].completed_count == 2

    def test_market_totals(self, session_engine, repo, tuesday_market, fill_employee_day):
        """Test market-scoped evidence totals and last activity."""
        fill_employee_day("w-1", TUESDAY)
        fill_employee_day("w-2", TUESDAY)
        repo.record("w-3", TUESDAY, EvidenceSource.STALL_CONFIRMATIONS, market_id="mkt-1", at=ist(TUESDAY, 11, 30))

        rollup = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 12)))

        assert rollup.stall_confirmations == 3
        assert rollup.media_uploads == 10
        assert rollup.evidence_totals["collections"] == 2
        assert rollup.last_activity_at == ist(TUESDAY, 11, 30)

    def test_to_dict(self, session_engine, tuesday_market, fill_employee_day):
        """Test the serialised rollup."""
        fill_employee_day("w-1", TUESDAY, name="Ravi Kumar", skip=(TaskKind.PUNCH_OUT,))

        data = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 12))).to_dict()

        assert data["market_name"] == "Banjara Hills Market"
        assert data["date"] == "2025-01-14"
        worker = data["workers"][0]
        assert worker["initials"] == "RK"
        assert worker["status"] == "incomplete"
        assert worker["duration_minutes"] == 240


class TestPartialFailure:
    """Test failure isolation across workers."""

    def test_scenario_e_one_slow_worker(self, session_engine, repo, tuesday_market, fill_employee_day):
        """Scenario E: one timed-out worker does not hold back the others."""
        for n in range(1, 11):
            fill_employee_day(f"w-{n:02d}", TUESDAY)
        repo.delay(EvidenceSource.OFFERS, 1.0, worker_id="w-07")

        rollup = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 12)))

        assert len(rollup.workers) == 10
        clean = [worker for worker in rollup.workers if not worker.warnings]
        slow = [worker for worker in rollup.workers if worker.warnings]
        assert len(clean) == 9
        assert all(worker.status == SessionStatus.COMPLETED for worker in clean)
        assert [worker.worker_id for worker in slow] == ["w-07"]
        assert slow[0].warnings[0].kind == "evidence_timeout"
        assert slow[0].status == SessionStatus.INCOMPLETE
        assert rollup.warnings == ()

    def test_source_outage_marks_market_totals(self, session_engine, repo, tuesday_market, fill_employee_day):
        """Test a source failing for everyone warns on the market and every worker."""
        fill_employee_day("w-1", TUESDAY)
        repo.fail(EvidenceSource.COLLECTIONS)

        rollup = asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, ist(TUESDAY, 12)))

        assert rollup.evidence_totals["collections"] == 0
        assert [warning.source for warning in rollup.warnings] == ["collections"]
        assert rollup.workers[0].warnings[0].source == "collections"

    def test_worker_error_is_flagged(self, session_engine, repo, tuesday_market, fill_employee_day):
        """Test an exception for one worker becomes an error row."""
        fill_employee_day("w-1", TUESDAY)
        fill_employee_day("w-2", TUESDAY)

        async def evaluate_worker(worker_day, now):
            if worker_day.worker_id == "w-2":
                raise RuntimeError("worker record corrupt")
            return await session_engine.evaluate_worker_day(
                worker_day.worker_id, worker_day.role, worker_day.day, now, market_id=worker_day.market_id
            )

        aggregator = MarketAggregationEngine(
            repo, session_engine.evaluator, session_engine.gate, evaluate_worker=evaluate_worker
        )
        rollup = asyncio.run(aggregator.evaluate_market(tuesday_market, TUESDAY, ist(TUESDAY, 12)))

        failed = [worker for worker in rollup.workers if worker.has_error]
        assert [worker.worker_id for worker in failed] == ["w-2"]
        assert failed[0].status is None
        assert failed[0].error == "worker record corrupt"
        assert rollup.status_counts == {"completed": 1, "error": 1}
        assert rollup.attendance == 2


class TestLiveMarkets:
    """Test the live market listing."""

    def test_only_scheduled_markets_sorted_by_name(self, session_engine, repo):
        """Test markets off their weekday are excluded and the rest sorted."""
        repo.add_market(MarketInfo(market_id="mkt-b", name="Secunderabad Market", day_of_week=1))
        repo.add_market(MarketInfo(market_id="mkt-a", name="Ameerpet Market", day_of_week=1))
        repo.add_market(MarketInfo(market_id="mkt-c", name="Miyapur Market", day_of_week=2))
        repo.add_market(MarketInfo(market_id="mkt-d", name="Dilsukhnagar Market", day_of_week=1, is_active=False))

        rollups = asyncio.run(session_engine.evaluate_live_markets(TUESDAY, ist(TUESDAY, 12)))

        assert [rollup.market_id for rollup in rollups] == ["mkt-a", "mkt-b"]

    def test_closed_day_has_no_live_markets(self, session_engine, repo):
        """Test a closed day returns an empty list."""
        repo.add_market(MarketInfo(market_id="mkt-mon", name="Ameerpet Market", day_of_week=0))

        assert asyncio.run(session_engine.evaluate_live_markets(MONDAY, ist(MONDAY, 12))) == []


class TestSummaryHelpers:
    """Test summary row helpers."""

    @pytest.mark.parametrize(
        "name,expected",
        [("Ravi Kumar", "RK"), ("sita", "S"), ("Anil Kumar Reddy", "AK"), (None, "?"), ("", "?")],
    )
    def test_initials(self, name, expected):
        """Test initials from worker names."""
        summary = WorkerDaySummary(worker_id="w-1", worker_name=name, role="employee", status=None)
        assert summary.initials == expected

    def test_duration_while_on_shift(self):
        """Test duration runs to now until punch-out."""
        summary = WorkerDaySummary(
            worker_id="w-1", worker_name=None, role="employee", status=None, punch_in=ist(TUESDAY, 8)
        )
        assert summary.duration_minutes(ist(TUESDAY, 9, 30)) == 90
        assert WorkerDaySummary("w-2", None, "employee", None).duration_minutes(ist(TUESDAY)) is None

    def test_unscheduled_constructor(self, tuesday_market):
        """Test the degenerate rollup."""
        rollup = MarketRollup.unscheduled(tuesday_market, MONDAY)
        assert rollup.scheduled is False
        assert rollup.to_dict()["evaluated_at"] is None
