"""Tests for the session engine entry points."""

import asyncio
import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

from src.services import session_engine as session_engine_module
from src.services.checklist import CLOSED_DAY_CHECKLIST, EvidenceSource, TaskKind
from src.services.evidence_repository import MarketInfo
from src.services.session_engine import SessionEngine, get_session_engine, set_session_engine, shutdown_session_engine
from src.services.session_errors import InvalidEvaluationTime, MarketNotFound
from src.services.session_status import SessionStatus
from tests.conftest import IST, MONDAY, TUESDAY, ist


def evaluate(engine, worker_id="w-1", role="employee", day=TUESDAY, now=None, **kwargs):
    now = now or ist(day, 12)
    return asyncio.run(engine.evaluate_worker_day(worker_id, role, day, now, **kwargs))


class TestEvaluateWorkerDay:
    """Test single worker-day evaluation."""

    def test_complete_day(self, session_engine, fill_employee_day):
        """Test a fully reported day."""
        fill_employee_day("w-1", TUESDAY)

        evaluation = evaluate(session_engine)

        assert evaluation.status == SessionStatus.COMPLETED
        assert evaluation.completed_count == evaluation.total_count == 13
        assert evaluation.remaining == 0
        assert evaluation.warnings == ()

    def test_recomputed_on_every_call(self, session_engine, repo, fill_employee_day):
        """Test new evidence changes the next evaluation."""
        fill_employee_day("w-1", TUESDAY, skip=(TaskKind.COLLECTIONS,))
        before = evaluate(session_engine, now=ist(TUESDAY, 15))

        repo.record("w-1", TUESDAY, EvidenceSource.COLLECTIONS, market_id="mkt-1")
        after = evaluate(session_engine, now=ist(TUESDAY, 15))

        assert before.status == SessionStatus.INCOMPLETE
        assert after.status == SessionStatus.COMPLETED

    def test_expired_status_is_not_sticky(self, session_engine, repo, fill_employee_day):
        """Test late evidence turns an expired day into completed."""
        fill_employee_day("w-1", TUESDAY, skip=(TaskKind.COLLECTIONS,))
        next_morning = ist(TUESDAY, 9) + timedelta(days=1)

        assert evaluate(session_engine, now=next_morning).status == SessionStatus.INCOMPLETE_EXPIRED

        repo.record("w-1", TUESDAY, EvidenceSource.COLLECTIONS)

        assert evaluate(session_engine, now=next_morning).status == SessionStatus.COMPLETED

    def test_not_started_worker(self, session_engine):
        """Scenario C: nothing logged by noon is active and not started."""
        evaluation = evaluate(session_engine)

        assert evaluation.status == SessionStatus.ACTIVE
        assert evaluation.not_started is True

    def test_role_lookup(self, session_engine, repo):
        """Test role=None looks up the stored role."""
        repo.add_worker("b-1", "bdo")

        evaluation = evaluate(session_engine, worker_id="b-1", role=None)

        assert evaluation.role == "bdo"
        assert evaluation.total_count == 5

    def test_failed_role_lookup_warns(self, session_engine, repo):
        """Test a failing role lookup falls back to the default checklist with a warning."""

        async def broken(worker_id):
            raise RuntimeError("workers table unavailable")

        repo.role_for = broken

        evaluation = evaluate(session_engine, role=None)

        assert evaluation.role == "employee"
        assert [warning.kind for warning in evaluation.warnings] == ["role_lookup_unavailable", "unknown_role"]

    def test_closed_day_uses_reduced_checklist(self, session_engine, repo):
        """Test employees on a closed Monday only owe next-day planning."""
        repo.record("w-1", MONDAY, EvidenceSource.NEXT_DAY_PLANNING)

        evaluation = evaluate(session_engine, day=MONDAY)

        assert tuple(task.kind for task in evaluation.per_task) == CLOSED_DAY_CHECKLIST
        assert evaluation.status == SessionStatus.COMPLETED

    def test_market_id_is_reported(self, session_engine, fill_employee_day):
        """Test the market filter is echoed on the result."""
        fill_employee_day("w-1", TUESDAY)

        data = evaluate(session_engine, market_id="mkt-1").to_dict()

        assert data["market_id"] == "mkt-1"
        assert data["status"] == "completed"
        assert len(data["tasks"]) == 13

    def test_naive_now_is_rejected(self, session_engine):
        """Test naive evaluation instants are rejected."""
        with pytest.raises(InvalidEvaluationTime):
            evaluate(session_engine, now=datetime(2025, 1, 14, 12, 0))

    def test_now_before_day_is_rejected(self, session_engine):
        """Test evaluating a future day is rejected."""
        with pytest.raises(InvalidEvaluationTime):
            evaluate(session_engine, now=ist(MONDAY, 12))


class TestEvaluateMarket:
    """Test market entry points."""

    def test_unknown_market(self, session_engine):
        """Test an unknown market id raises MarketNotFound."""
        with pytest.raises(MarketNotFound) as exc_info:
            asyncio.run(session_engine.evaluate_market("missing", TUESDAY, ist(TUESDAY)))
        assert exc_info.value.market_id == "missing"

    def test_market_rejects_naive_now(self, session_engine, tuesday_market):
        """Test market evaluation validates now."""
        with pytest.raises(InvalidEvaluationTime):
            asyncio.run(session_engine.evaluate_market("mkt-1", TUESDAY, datetime(2025, 1, 14, 12)))

    def test_is_scheduled(self, session_engine, tuesday_market):
        """Test schedule checks go through the gate."""
        assert session_engine.is_scheduled(tuesday_market, TUESDAY)
        assert not session_engine.is_scheduled(tuesday_market, MONDAY)
        assert session_engine.is_scheduled("bdo", MONDAY)


class TestEngineConstruction:
    """Test engine wiring."""

    def test_from_settings(self, repo):
        """Test settings feed the gate, timeout and concurrency."""
        settings = SimpleNamespace(
            reporting=SimpleNamespace(
                timezone="Asia/Kolkata",
                closed_weekdays=[6],
                evidence_timeout_seconds=1.5,
                max_concurrent_evaluations=3,
            )
        )

        engine = SessionEngine.from_settings(repo, settings)

        assert engine.gate.closed_weekdays == frozenset({6})
        assert engine.evaluator.timeout == 1.5
        assert engine.aggregator.max_concurrency == 3
        assert engine.tz.zone == IST.zone

    def test_singleton(self, session_engine, monkeypatch):
        """Test the application engine can be replaced and reset."""
        monkeypatch.setattr(session_engine_module, "_session_engine", None)

        set_session_engine(session_engine)
        assert get_session_engine() is session_engine

        set_session_engine(None)
        assert session_engine_module._session_engine is None

    def test_shutdown_closes_repository(self, monkeypatch):
        """Test shutdown releases the repository and resets the engine."""
        monkeypatch.setattr(session_engine_module, "_session_engine", None)
        repository = MagicMock()
        set_session_engine(SessionEngine(repository, tz=IST))

        shutdown_session_engine()
        shutdown_session_engine()

        repository.close.assert_called_once()
        assert session_engine_module._session_engine is None

    def test_markets_listing_sees_new_markets(self, session_engine, repo):
        """Test markets added after construction are picked up."""
        assert asyncio.run(session_engine.evaluate_live_markets(TUESDAY, ist(TUESDAY))) == []

        repo.add_market(MarketInfo(market_id="mkt-9", name="Kondapur Market", day_of_week=1))

        assert len(asyncio.run(session_engine.evaluate_live_markets(TUESDAY, ist(TUESDAY)))) == 1
