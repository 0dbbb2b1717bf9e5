"""Role checklists.

Every role has a fixed, ordered list of tasks to complete each reporting day.
Each task is satisfied by one or more evidence sources; the punch tasks are
satisfied by the punch timestamps on the work session instead.
"""

import enum
from typing import Dict, Iterable, Optional, Tuple, Union

from src.models.worker import WorkerRole


class EvidenceSource(enum.Enum):
    """An independent store that can be counted for a scope and date."""

    # Employee
    STALL_CONFIRMATIONS = "stall_confirmations"
    MEDIA_OUTSIDE_RATES = "media:outside_rates"
    MEDIA_RATE_BOARD = "media:rate_board"
    MEDIA_MARKET_VIDEO = "media:market_video"
    MEDIA_CLEANING_VIDEO = "media:cleaning_video"
    MEDIA_CUSTOMER_FEEDBACK = "media:customer_feedback"
    OFFERS = "offers"
    NON_AVAILABLE_COMMODITIES = "non_available_commodities"
    ORGANISER_FEEDBACK = "organiser_feedback"
    NEXT_DAY_PLANNING = "next_day_planning"
    STALL_INSPECTIONS = "stall_inspections"
    COLLECTIONS = "collections"

    # BDO
    BDO_MARKET_SUBMISSIONS = "bdo_market_submissions"
    BDO_STALL_SUBMISSIONS = "bdo_stall_submissions"
    LOCATION_VISITS = "market_location_visits"

    # Market manager
    EMPLOYEE_ALLOCATIONS = "employee_allocations"
    LAND_SEARCH = "market_land_search"
    STALL_SEARCH = "stall_searching_updates"
    MONEY_RECOVERY = "assets_money_recovery"
    ASSETS_USAGE = "assets_usage"
    STALL_FEEDBACK = "bms_stall_feedbacks"
    INSPECTION_UPDATES = "market_inspection_updates"


class TaskKind(enum.Enum):
    """One checklist slot."""

    PUNCH_IN = "punch_in"
    STALL_CONFIRMATION = "stall_confirmation"
    OUTSIDE_RATES_MEDIA = "outside_rates_media"
    RATE_BOARD_MEDIA = "rate_board_media"
    MARKET_VIDEO = "market_video"
    CLEANING_VIDEO = "cleaning_video"
    CUSTOMER_FEEDBACK_MEDIA = "customer_feedback_media"
    TODAYS_OFFERS = "todays_offers"
    NON_AVAILABLE_COMMODITIES = "non_available_commodities"
    ORGANISER_FEEDBACK_OR_PLANNING = "organiser_feedback_or_planning"
    STALL_INSPECTION = "stall_inspection"
    COLLECTIONS = "collections"
    PUNCH_OUT = "punch_out"
    NEXT_DAY_PLANNING = "next_day_planning"

    MARKET_SUBMISSION = "market_submission"
    STALL_SUBMISSION = "stall_submission"
    LOCATION_VISIT = "location_visit"

    EMPLOYEE_ALLOCATION = "employee_allocation"
    LAND_SEARCH = "land_search"
    STALL_SEARCH = "stall_search"
    MONEY_RECOVERY = "money_recovery"
    ASSETS_USAGE = "assets_usage"
    STALL_FEEDBACK = "stall_feedback"
    INSPECTION_UPDATE = "inspection_update"


PUNCH_TASKS = frozenset({TaskKind.PUNCH_IN, TaskKind.PUNCH_OUT})

# Tasks with more than one source are OR-merged: one non-zero source is enough.
TASK_SOURCES: Dict[TaskKind, Tuple[EvidenceSource, ...]] = {
    TaskKind.PUNCH_IN: (),
    TaskKind.PUNCH_OUT: (),
    TaskKind.STALL_CONFIRMATION: (EvidenceSource.STALL_CONFIRMATIONS,),
    TaskKind.OUTSIDE_RATES_MEDIA: (EvidenceSource.MEDIA_OUTSIDE_RATES,),
    TaskKind.RATE_BOARD_MEDIA: (EvidenceSource.MEDIA_RATE_BOARD,),
    TaskKind.MARKET_VIDEO: (EvidenceSource.MEDIA_MARKET_VIDEO,),
    TaskKind.CLEANING_VIDEO: (EvidenceSource.MEDIA_CLEANING_VIDEO,),
    TaskKind.CUSTOMER_FEEDBACK_MEDIA: (EvidenceSource.MEDIA_CUSTOMER_FEEDBACK,),
    TaskKind.TODAYS_OFFERS: (EvidenceSource.OFFERS,),
    TaskKind.NON_AVAILABLE_COMMODITIES: (EvidenceSource.NON_AVAILABLE_COMMODITIES,),
    TaskKind.ORGANISER_FEEDBACK_OR_PLANNING: (
        EvidenceSource.ORGANISER_FEEDBACK,
        EvidenceSource.NEXT_DAY_PLANNING,
    ),
    TaskKind.STALL_INSPECTION: (EvidenceSource.STALL_INSPECTIONS,),
    TaskKind.COLLECTIONS: (EvidenceSource.COLLECTIONS,),
    TaskKind.NEXT_DAY_PLANNING: (EvidenceSource.NEXT_DAY_PLANNING,),
    TaskKind.MARKET_SUBMISSION: (EvidenceSource.BDO_MARKET_SUBMISSIONS,),
    TaskKind.STALL_SUBMISSION: (EvidenceSource.BDO_STALL_SUBMISSIONS,),
    TaskKind.LOCATION_VISIT: (EvidenceSource.LOCATION_VISITS,),
    TaskKind.EMPLOYEE_ALLOCATION: (EvidenceSource.EMPLOYEE_ALLOCATIONS,),
    TaskKind.LAND_SEARCH: (EvidenceSource.LAND_SEARCH,),
    TaskKind.STALL_SEARCH: (EvidenceSource.STALL_SEARCH,),
    TaskKind.MONEY_RECOVERY: (EvidenceSource.MONEY_RECOVERY,),
    TaskKind.ASSETS_USAGE: (EvidenceSource.ASSETS_USAGE,),
    TaskKind.STALL_FEEDBACK: (EvidenceSource.STALL_FEEDBACK,),
    TaskKind.INSPECTION_UPDATE: (EvidenceSource.INSPECTION_UPDATES,),
}

TASK_LABELS: Dict[TaskKind, str] = {
    TaskKind.PUNCH_IN: "Punch In",
    TaskKind.STALL_CONFIRMATION: "Stall Confirmations",
    TaskKind.OUTSIDE_RATES_MEDIA: "Outside Rates Photo",
    TaskKind.RATE_BOARD_MEDIA: "Rate Board Photo",
    TaskKind.MARKET_VIDEO: "Market Video",
    TaskKind.CLEANING_VIDEO: "Cleaning Video",
    TaskKind.CUSTOMER_FEEDBACK_MEDIA: "Customer Feedback Video",
    TaskKind.TODAYS_OFFERS: "Today's Offers",
    TaskKind.NON_AVAILABLE_COMMODITIES: "Non-Available Commodities",
    TaskKind.ORGANISER_FEEDBACK_OR_PLANNING: "Organiser Feedback / Next Day Planning",
    TaskKind.STALL_INSPECTION: "Stall Inspection",
    TaskKind.COLLECTIONS: "Collections",
    TaskKind.PUNCH_OUT: "Punch Out",
    TaskKind.NEXT_DAY_PLANNING: "Next Day Planning",
    TaskKind.MARKET_SUBMISSION: "Market Submission",
    TaskKind.STALL_SUBMISSION: "Stall Submission",
    TaskKind.LOCATION_VISIT: "Market Location Visit",
    TaskKind.EMPLOYEE_ALLOCATION: "Employee Allocation",
    TaskKind.LAND_SEARCH: "New Market Land Search",
    TaskKind.STALL_SEARCH: "Stall Searching Updates",
    TaskKind.MONEY_RECOVERY: "Assets Money Recovery",
    TaskKind.ASSETS_USAGE: "Assets Usage in Live Markets",
    TaskKind.STALL_FEEDBACK: "BMS Stall Feedbacks",
    TaskKind.INSPECTION_UPDATE: "Market Inspection Update",
}

ROLE_CHECKLISTS: Dict[WorkerRole, Tuple[TaskKind, ...]] = {
    WorkerRole.EMPLOYEE: (
        TaskKind.PUNCH_IN,
        TaskKind.STALL_CONFIRMATION,
        TaskKind.OUTSIDE_RATES_MEDIA,
        TaskKind.RATE_BOARD_MEDIA,
        TaskKind.MARKET_VIDEO,
        TaskKind.CLEANING_VIDEO,
        TaskKind.CUSTOMER_FEEDBACK_MEDIA,
        TaskKind.TODAYS_OFFERS,
        TaskKind.NON_AVAILABLE_COMMODITIES,
        TaskKind.ORGANISER_FEEDBACK_OR_PLANNING,
        TaskKind.STALL_INSPECTION,
        TaskKind.COLLECTIONS,
        TaskKind.PUNCH_OUT,
    ),
    WorkerRole.BDO: (
        TaskKind.PUNCH_IN,
        TaskKind.MARKET_SUBMISSION,
        TaskKind.STALL_SUBMISSION,
        TaskKind.LOCATION_VISIT,
        TaskKind.PUNCH_OUT,
    ),
    WorkerRole.MARKET_MANAGER: (
        TaskKind.EMPLOYEE_ALLOCATION,
        TaskKind.PUNCH_IN,
        TaskKind.LAND_SEARCH,
        TaskKind.STALL_SEARCH,
        TaskKind.MONEY_RECOVERY,
        TaskKind.ASSETS_USAGE,
        TaskKind.STALL_FEEDBACK,
        TaskKind.INSPECTION_UPDATE,
        TaskKind.PUNCH_OUT,
    ),
}

# On a closed market day the market-bound roles only plan the next day.
CLOSED_DAY_CHECKLIST: Tuple[TaskKind, ...] = (TaskKind.NEXT_DAY_PLANNING,)

DEFAULT_ROLE = WorkerRole.EMPLOYEE

# Roles whose work happens at one market; the rest roam across markets.
MARKET_BOUND_ROLES = frozenset({WorkerRole.EMPLOYEE})


RoleLike = Union[WorkerRole, str, None]


def resolve_role(role: RoleLike) -> Optional[WorkerRole]:
    """Map a role value to a WorkerRole, or None when it is not recognised."""
    if isinstance(role, WorkerRole):
        return role
    if not role:
        return None
    try:
        return WorkerRole(str(role).strip().lower())
    except ValueError:
        return None


def is_known_role(role: RoleLike) -> bool:
    return resolve_role(role) is not None


def is_market_bound(role: RoleLike) -> bool:
    """Unknown roles are treated like the default (market-bound) role."""
    return (resolve_role(role) or DEFAULT_ROLE) in MARKET_BOUND_ROLES


def checklist_for(role: RoleLike, closed_day: bool = False) -> Tuple[TaskKind, ...]:
    """
    Ordered checklist for a role.

    Args:
        role: WorkerRole or role string; unknown values use the employee list
        closed_day: True on a closed market day

    Returns:
        Tuple of TaskKind in display order
    """
    resolved = resolve_role(role) or DEFAULT_ROLE
    if closed_day and resolved in MARKET_BOUND_ROLES:
        return CLOSED_DAY_CHECKLIST
    return ROLE_CHECKLISTS[resolved]


def sources_for(kind: TaskKind) -> Tuple[EvidenceSource, ...]:
    return TASK_SOURCES[kind]


def sources_for_checklist(checklist: Iterable[TaskKind]) -> Tuple[EvidenceSource, ...]:
    """Distinct evidence sources a checklist needs, in first-use order."""
    seen = []
    for kind in checklist:
        for source in TASK_SOURCES[kind]:
            if source not in seen:
                seen.append(source)
    return tuple(seen)


def task_label(kind: TaskKind) -> str:
    return TASK_LABELS.get(kind, kind.value.replace("_", " ").title())
