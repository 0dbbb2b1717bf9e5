"""Session status API endpoints."""

from flask import Blueprint, jsonify, request
from datetime import date, datetime
import logging
import asyncio

from src.services.checklist import DEFAULT_ROLE, checklist_for, task_label
from src.services.session_engine import get_session_engine
from src.services.session_errors import InvalidEvaluationTime, MarketNotFound
from src.utils.cache_manager import CacheManager, get_cache_manager
from src.utils.timezone import now_reporting, reporting_date

logger = logging.getLogger(__name__)

# Create blueprint
sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def success_response(data=None, message=None, status_code=200):
    """Standard success response format."""
    response = {"success": True}
    if data is not None:
        response["data"] = data
    if message is not None:
        response["message"] = message
    return jsonify(response), status_code


def error_response(error, status_code=500, details=None):
    """Standard error response format."""
    response = {"success": False, "error": str(error)}
    if details is not None:
        response["details"] = details
    return jsonify(response), status_code


def _evaluation_time(engine):
    """Resolve (day, now) from the ``date`` and ``now`` query parameters.

    Raises:
        ValueError: If ``date`` is not YYYY-MM-DD or ``now`` is not ISO 8601
    """
    now_param = request.args.get("now")
    now = datetime.fromisoformat(now_param) if now_param else now_reporting(engine.tz)

    date_param = request.args.get("date")
    if date_param:
        day = date.fromisoformat(date_param)
    elif now.tzinfo is not None:
        day = reporting_date(now, engine.tz)
    else:
        day = now.date()
    return day, now


# =============================================================================
# API Routes
# =============================================================================


@sessions_bp.route("/<worker_id>", methods=["GET"])
def get_worker_session(worker_id):
    """Get the session status of one worker for one date.

    Query params:
        date: Reporting date (YYYY-MM-DD), defaults to today in the reporting zone
        now: Evaluation instant (ISO 8601 with offset), defaults to the current time
        role: Worker role, looked up when omitted
        market_id: Narrow evidence to one market
        cached: "true" to return the last stored hint when one is still valid
    """
    engine = get_session_engine()
    try:
        day, now = _evaluation_time(engine)
    except ValueError as e:
        return error_response(f"Invalid date or time: {e}", status_code=400)

    cache = get_cache_manager()
    key = CacheManager.worker_key(worker_id, day)

    try:
        if request.args.get("cached", "").lower() == "true" and now.tzinfo is not None:
            hint = cache.get_hint(key, day, now=now, tz=engine.tz)
            if hint is not None:
                return success_response(dict(hint["data"], cached=True, cached_at=hint.get("cached_at")))

        evaluation = asyncio.run(
            engine.evaluate_worker_day(
                worker_id,
                request.args.get("role"),
                day,
                now,
                market_id=request.args.get("market_id"),
            )
        )
        payload = evaluation.to_dict()
        cache.set_hint(key, payload, day, now=now, tz=engine.tz)
        return success_response(dict(payload, cached=False))

    except InvalidEvaluationTime as e:
        return error_response(e, status_code=422)
    except Exception as e:
        logger.error(f"Error evaluating session for worker {worker_id}: {e}", exc_info=True)
        return error_response(e, status_code=500)


@sessions_bp.route("/markets/live", methods=["GET"])
def get_live_markets():
    """Get rollups for every market scheduled on a date."""
    engine = get_session_engine()
    try:
        day, now = _evaluation_time(engine)
    except ValueError as e:
        return error_response(f"Invalid date or time: {e}", status_code=400)

    try:
        rollups = asyncio.run(engine.evaluate_live_markets(day, now))
        return success_response(
            {
                "date": day.isoformat(),
                "closed_day": engine.gate.is_closed_day(day),
                "markets": [rollup.to_dict() for rollup in rollups],
            }
        )
    except InvalidEvaluationTime as e:
        return error_response(e, status_code=422)
    except Exception as e:
        logger.error(f"Error evaluating live markets for {day}: {e}", exc_info=True)
        return error_response(e, status_code=500)


@sessions_bp.route("/markets/<market_id>", methods=["GET"])
def get_market_rollup(market_id):
    """Get the rollup of one market for one date."""
    engine = get_session_engine()
    try:
        day, now = _evaluation_time(engine)
    except ValueError as e:
        return error_response(f"Invalid date or time: {e}", status_code=400)

    try:
        rollup = asyncio.run(engine.evaluate_market(market_id, day, now))
        payload = rollup.to_dict()
        get_cache_manager().set_hint(CacheManager.market_key(market_id, day), payload, day, now=now, tz=engine.tz)
        return success_response(payload)
    except MarketNotFound as e:
        return error_response(e, status_code=404)
    except InvalidEvaluationTime as e:
        return error_response(e, status_code=422)
    except Exception as e:
        logger.error(f"Error evaluating market {market_id} for {day}: {e}", exc_info=True)
        return error_response(e, status_code=500)


@sessions_bp.route("/schedule/<market_id>", methods=["GET"])
def get_market_schedule(market_id):
    """Whether a market is reportable on a date, and the employee checklist that applies."""
    engine = get_session_engine()
    date_param = request.args.get("date")
    try:
        day = date.fromisoformat(date_param) if date_param else reporting_date(now_reporting(engine.tz), engine.tz)
    except ValueError as e:
        return error_response(f"Invalid date: {e}", status_code=400)

    try:
        market = asyncio.run(engine.repository.get_market(market_id))
        if market is None:
            return error_response(MarketNotFound(market_id), status_code=404)

        closed_day = engine.gate.is_closed_day(day)
        checklist = checklist_for(DEFAULT_ROLE, closed_day=closed_day)
        return success_response(
            {
                "market_id": market.market_id,
                "market_name": market.name,
                "date": day.isoformat(),
                "scheduled": engine.is_scheduled(market, day),
                "closed_day": closed_day,
                "checklist": [{"kind": kind.value, "label": task_label(kind)} for kind in checklist],
            }
        )
    except Exception as e:
        logger.error(f"Error checking schedule for market {market_id}: {e}", exc_info=True)
        return error_response(e, status_code=500)
