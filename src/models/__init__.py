"""Models package for the market session monitor."""

# Import base first
from .base import Base

# Import all model classes for easy access
from .worker import Worker, WorkerRole, Market, MarketSchedule
from .work_session import WorkSession
from .evidence import (
    StallConfirmation,
    MediaUpload,
    Offer,
    NonAvailableCommodity,
    OrganiserFeedback,
    NextDayPlanning,
    StallInspection,
    Collection,
    BDOMarketSubmission,
    BDOStallSubmission,
    MarketLocationVisit,
    EmployeeAllocation,
    MarketLandSearch,
    StallSearchUpdate,
    AssetsMoneyRecovery,
    AssetsUsage,
    StallFeedback,
    MarketInspectionUpdate,
)

# Export all models
__all__ = [
    "Base",
    "Worker",
    "WorkerRole",
    "Market",
    "MarketSchedule",
    "WorkSession",
    "StallConfirmation",
    "MediaUpload",
    "Offer",
    "NonAvailableCommodity",
    "OrganiserFeedback",
    "NextDayPlanning",
    "StallInspection",
    "Collection",
    "BDOMarketSubmission",
    "BDOStallSubmission",
    "MarketLocationVisit",
    "EmployeeAllocation",
    "MarketLandSearch",
    "StallSearchUpdate",
    "AssetsMoneyRecovery",
    "AssetsUsage",
    "StallFeedback",
    "MarketInspectionUpdate",
]
