"""Field worker and market models."""

from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from datetime import datetime, timezone
import enum
import uuid

from .base import Base


class WorkerRole(enum.Enum):
    """Reporting role of a field worker."""

    EMPLOYEE = "employee"
    BDO = "bdo"
    MARKET_MANAGER = "market_manager"


class Worker(Base):
    """A field worker with a single reporting role."""

    __tablename__ = "workers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name = Column(String(255), nullable=False)
    # Stored as a plain string so unknown roles survive a round trip and can be
    # reported instead of failing the load.
    role = Column(String(50), nullable=False, default=WorkerRole.EMPLOYEE.value)
    phone = Column(String(50))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Worker(id={self.id}, name={self.full_name}, role={self.role})>"

    @property
    def initials(self) -> str:
        parts = [p for p in (self.full_name or "").split(" ") if p]
        return "".join(p[0] for p in parts).upper()[:2]


class Market(Base):
    """A physical market that operates on a fixed weekday."""

    __tablename__ = "markets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    city = Column(String(255))
    location = Column(String(255))
    # Python weekday number (Monday=0 ... Sunday=6); None means no regular day
    day_of_week = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"<Market(id={self.id}, name={self.name}, day_of_week={self.day_of_week})>"


class MarketSchedule(Base):
    """One-off operating date for a market outside its regular weekday."""

    __tablename__ = "market_schedule"

    id = Column(Integer, primary_key=True, autoincrement=True)
    market_id = Column(String(36), ForeignKey("markets.id"), nullable=False)
    schedule_date = Column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("market_id", "schedule_date", name="uq_market_schedule_day"),
        Index("idx_market_schedule_date", "schedule_date"),
    )
