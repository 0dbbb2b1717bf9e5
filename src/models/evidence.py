"""Evidence store models.

Each table records one kind of work a field worker performs during a
reporting day. They are written by the surrounding application and only ever
counted here. Every table shares the same scope columns so that a count can
be taken per worker (``user_id`` + ``record_date``) or per market
(``market_id`` + ``record_date``).
"""

from sqlalchemy import Column, String, Date, Index, Integer, Numeric, Text
from datetime import datetime, timezone
import uuid

from .base import Base, UTCDateTime


class EvidenceRecordMixin:
    """Scope columns shared by every evidence table."""

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True)
    market_id = Column(String(36), nullable=True, index=True)
    session_id = Column(String(36), nullable=True)
    # Civil date in the reporting time zone the record belongs to
    record_date = Column(Date, nullable=False, index=True)
    created_at = Column(UTCDateTime(), default=lambda: datetime.now(timezone.utc))


# Employee evidence -----------------------------------------------------------


class StallConfirmation(EvidenceRecordMixin, Base):
    __tablename__ = "stall_confirmations"

    farmer_name = Column(String(255))
    stall_name = Column(String(255))
    stall_no = Column(String(50))


class MediaUpload(EvidenceRecordMixin, Base):
    """Photo or video captured during a session.

    ``media_type`` is one of: outside_rates, rate_board, market_video,
    cleaning_video, customer_feedback, selfie_gps.
    """

    __tablename__ = "media"

    media_type = Column(String(50), nullable=False)
    file_url = Column(Text)
    captured_at = Column(UTCDateTime())

    __table_args__ = (Index("idx_media_type_date", "media_type", "record_date"),)


class Offer(EvidenceRecordMixin, Base):
    __tablename__ = "offers"

    commodity_name = Column(String(255))
    price = Column(Numeric(10, 2))


class NonAvailableCommodity(EvidenceRecordMixin, Base):
    __tablename__ = "non_available_commodities"

    commodity_name = Column(String(255))


class OrganiserFeedback(EvidenceRecordMixin, Base):
    __tablename__ = "organiser_feedback"

    feedback = Column(Text)


class NextDayPlanning(EvidenceRecordMixin, Base):
    __tablename__ = "next_day_planning"

    next_day_market_name = Column(String(255))


class StallInspection(EvidenceRecordMixin, Base):
    __tablename__ = "stall_inspections"

    farmer_name = Column(String(255))
    notes = Column(Text)


class Collection(EvidenceRecordMixin, Base):
    __tablename__ = "collections"

    amount = Column(Numeric(10, 2))
    mode = Column(String(20))


# BDO evidence ----------------------------------------------------------------


class BDOMarketSubmission(EvidenceRecordMixin, Base):
    __tablename__ = "bdo_market_submissions"

    market_name = Column(String(255))
    status = Column(String(50), default="pending")


class BDOStallSubmission(EvidenceRecordMixin, Base):
    __tablename__ = "bdo_stall_submissions"

    farmer_name = Column(String(255))
    status = Column(String(50), default="pending")


class MarketLocationVisit(EvidenceRecordMixin, Base):
    __tablename__ = "market_location_visits"

    location_name = Column(String(255))


# Market manager evidence -----------------------------------------------------


class EmployeeAllocation(EvidenceRecordMixin, Base):
    __tablename__ = "employee_allocations"

    employee_name = Column(String(255))


class MarketLandSearch(EvidenceRecordMixin, Base):
    __tablename__ = "market_land_search"

    place = Column(String(255))


class StallSearchUpdate(EvidenceRecordMixin, Base):
    __tablename__ = "stall_searching_updates"

    farmer_name = Column(String(255))


class AssetsMoneyRecovery(EvidenceRecordMixin, Base):
    __tablename__ = "assets_money_recovery"

    amount = Column(Numeric(10, 2))


class AssetsUsage(EvidenceRecordMixin, Base):
    __tablename__ = "assets_usage"

    asset_name = Column(String(255))
    quantity = Column(Integer)


class StallFeedback(EvidenceRecordMixin, Base):
    __tablename__ = "bms_stall_feedbacks"

    feedback = Column(Text)


class MarketInspectionUpdate(EvidenceRecordMixin, Base):
    __tablename__ = "market_inspection_updates"

    update_notes = Column(Text)
