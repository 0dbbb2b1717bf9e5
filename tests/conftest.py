"""Pytest configuration and shared fixtures."""

import pytest
import os
from datetime import date, datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# Set test environment variables before importing app
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REPORTING_TIMEZONE"] = "Asia/Kolkata"
os.environ["CLOSED_WEEKDAYS"] = "monday"
os.environ["EVIDENCE_TIMEOUT_SECONDS"] = "0.5"
os.environ["STATUS_CACHE_ENABLED"] = "false"
os.environ["EVIDENCE_WEBHOOK_SECRET"] = "test-webhook-secret"

import pytz

from src.models import Base
from src.services.checklist import TaskKind, checklist_for, sources_for
from src.services.evidence_repository import InMemoryEvidenceRepository, MarketInfo
from src.services.schedule_gate import ScheduleGate
from src.services.session_engine import SessionEngine

IST = pytz.timezone("Asia/Kolkata")

# 2025-01-13 is a Monday (closed day); 2025-01-14 is a Tuesday
MONDAY = date(2025, 1, 13)
TUESDAY = date(2025, 1, 14)


def ist(day, hour=12, minute=0, second=0):
    """Aware IST datetime on ``day``."""
    return IST.localize(datetime(day.year, day.month, day.day, hour, minute, second))


@pytest.fixture
def repo():
    """Empty in-memory evidence repository."""
    return InMemoryEvidenceRepository()


@pytest.fixture
def tuesday_market(repo):
    """Active market operating on Tuesdays."""
    market = MarketInfo(market_id="mkt-1", name="Banjara Hills Market", city="Hyderabad", day_of_week=1)
    repo.add_market(market)
    return market


@pytest.fixture
def session_engine(repo):
    """Session engine over the in-memory repository, Mondays closed."""
    return SessionEngine(repo, gate=ScheduleGate(closed_weekdays=[0]), timeout=0.2, max_concurrency=5, tz=IST)


@pytest.fixture
def fill_employee_day(repo):
    """Record an employee day, completing every checklist slot except ``skip``."""

    def _fill(worker_id, day, market_id="mkt-1", skip=(), name=None):
        repo.add_worker(worker_id, "employee", name=name or f"Worker {worker_id}")
        punch_in = None if TaskKind.PUNCH_IN in skip else ist(day, 8, 0)
        punch_out = None if TaskKind.PUNCH_OUT in skip else ist(day, 18, 0)
        repo.add_session(worker_id, day, market_id=market_id, punch_in=punch_in, punch_out=punch_out)

        for kind in checklist_for("employee"):
            if kind in skip:
                continue
            sources = sources_for(kind)
            if sources:
                # One source is enough for an OR-merged slot
                repo.record(worker_id, day, sources[0], market_id=market_id, at=ist(day, 9, 0))
        return worker_id

    return _fill



@pytest.fixture
def file_db(tmp_path):
    """File-backed SQLite database, shareable across executor threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'evidence.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    yield engine, SessionLocal
    engine.dispose()


@pytest.fixture
def app(session_engine, monkeypatch):
    """Create Flask app for testing, wired to the in-memory engine."""
    from src.services import session_engine as session_engine_module
    from src.utils import cache_manager as cache_manager_module
    from src.utils.cache_manager import CacheManager
    from src.web_interface import app as flask_app

    monkeypatch.setattr(session_engine_module, "_session_engine", session_engine)
    monkeypatch.setattr(cache_manager_module, "_cache_manager", CacheManager(enabled=False))

    flask_app.config["TESTING"] = True
    yield flask_app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()
