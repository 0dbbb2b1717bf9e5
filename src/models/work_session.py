"""Work session model: one worker's reporting day."""

from sqlalchemy import Column, String, Date, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime, timezone
import uuid

from .base import Base, UTCDateTime


class WorkSession(Base):
    """One worker's reporting obligation for one civil date.

    Created by the host application on the worker's first punch or first
    evidence of the day. Punch timestamps are the source of truth for the
    punch checklist slots; the session status is never stored here, it is
    always derived from the evidence tables.

    Attributes:
        user_id: Worker who owns the session
        role: Role the worker reported under on that day
        market_id: Market worked at (None for roaming roles)
        session_date: Civil date in the reporting time zone
        punch_in_time: Punch-in instant, stored and returned as UTC
        punch_out_time: Punch-out instant, stored and returned as UTC
    """

    __tablename__ = "work_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("workers.id"), nullable=False)
    role = Column(String(50), nullable=False)
    market_id = Column(String(36), ForeignKey("markets.id"), nullable=True)
    session_date = Column(Date, nullable=False)
    punch_in_time = Column(UTCDateTime(), nullable=True)
    punch_out_time = Column(UTCDateTime(), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("user_id", "session_date", "market_id", name="uq_work_session_day"),
        Index("idx_work_sessions_market_date", "market_id", "session_date"),
    )

    def __repr__(self):
        return f"<WorkSession(user={self.user_id}, date={self.session_date}, market={self.market_id})>"
