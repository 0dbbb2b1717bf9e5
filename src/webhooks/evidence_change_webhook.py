"""
Evidence Change Webhook Handler

Receives row-change notifications from the evidence stores (new upload, new
confirmation, punch in/out) and re-evaluates the affected worker-day and
market so the status hint cache reflects the change. Delivery is
at-least-once; re-evaluation is idempotent, so duplicates are harmless.
Implements HMAC SHA-256 signature verification for security.
"""

import logging
import hmac
import hashlib
import asyncio
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple
from flask import request, jsonify

from config.settings import settings
from src.services.checklist import EvidenceSource
from src.services.session_engine import SessionEngine, get_session_engine
from src.services.session_errors import InvalidEvaluationTime, MarketNotFound
from src.utils.cache_manager import CacheManager, get_cache_manager
from src.utils.timezone import now_reporting, reporting_date

logger = logging.getLogger(__name__)

# Evidence tables, plus the media table shared by every media source
EVIDENCE_TABLES = frozenset(source.value.split(":", 1)[0] for source in EvidenceSource)
SESSION_TABLES = frozenset({"work_sessions"})
MARKET_TABLES = frozenset({"markets", "market_schedule"})


def verify_evidence_signature(payload_body: bytes, signature_header: str, webhook_secret: str) -> bool:
    """
    Verify the HMAC SHA-256 signature of an evidence change notification.

    Args:
        payload_body: Raw request body as bytes
        signature_header: Value from x-hub-signature header (format: "sha256=...")
        webhook_secret: Shared webhook secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not signature_header or not signature_header.startswith('sha256='):
        logger.warning("Invalid signature header format")
        return False

    expected_signature = signature_header[7:]

    computed_signature = hmac.new(
        webhook_secret.encode('utf-8'),
        payload_body,
        hashlib.sha256
    ).hexdigest()

    # Constant-time comparison to prevent timing attacks
    return hmac.compare_digest(computed_signature, expected_signature)


def _record_day(record: Dict[str, Any], tz) -> Optional[date]:
    """Reporting date a changed row belongs to."""
    for field_name in ('record_date', 'session_date', 'schedule_date'):
        value = record.get(field_name)
        if value:
            return date.fromisoformat(str(value)[:10])

    created_at = record.get('created_at')
    if created_at:
        return reporting_date(datetime.fromisoformat(str(created_at).replace('Z', '+00:00')), tz)
    return None


async def reevaluate_change(
    engine: SessionEngine,
    cache: CacheManager,
    table: str,
    record: Dict[str, Any],
    now: datetime,
) -> Tuple[str, Dict[str, Any]]:
    """
    Re-evaluate whatever a changed row can affect and refresh the hints.

    Args:
        engine: Session engine
        cache: Status hint cache
        table: Name of the changed table
        record: Changed row as sent by the change feed
        now: Aware evaluation instant

    Returns:
        (outcome, details) where outcome is "reevaluated", "invalidated" or "ignored"
    """
    if table in MARKET_TABLES:
        market_id = record.get('market_id') if table == 'market_schedule' else record.get('id')
        if not market_id:
            return 'ignored', {'reason': 'missing market id'}
        deleted = cache.invalidate(CacheManager.market_pattern(market_id))
        return 'invalidated', {'market_id': market_id, 'keys_deleted': deleted}

    if table not in EVIDENCE_TABLES and table not in SESSION_TABLES:
        return 'ignored', {'reason': f'untracked table {table}'}

    worker_id = record.get('user_id')
    market_id = record.get('market_id')
    day = _record_day(record, engine.tz)
    if day is None:
        return 'ignored', {'reason': 'missing date'}

    details: Dict[str, Any] = {'date': day.isoformat()}
    tasks = []
    if worker_id:
        tasks.append(engine.evaluate_worker_day(worker_id, record.get('role'), day, now))
    if market_id:
        tasks.append(engine.evaluate_market(market_id, day, now))
    if not tasks:
        return 'ignored', {'reason': 'record has neither user_id nor market_id'}

    results = await asyncio.gather(*tasks, return_exceptions=True)

    index = 0
    if worker_id:
        evaluation = results[index]
        index += 1
        if isinstance(evaluation, Exception):
            raise evaluation
        cache.set_hint(CacheManager.worker_key(worker_id, day), evaluation.to_dict(), day, now=now, tz=engine.tz)
        details['worker'] = {'worker_id': worker_id, 'status': evaluation.status.value}

    if market_id:
        rollup = results[index]
        if isinstance(rollup, MarketNotFound):
            logger.warning(f"Change on {table} references unknown market {market_id}")
            details['market'] = {'market_id': market_id, 'error': 'not found'}
        elif isinstance(rollup, Exception):
            raise rollup
        else:
            cache.set_hint(CacheManager.market_key(market_id, day), rollup.to_dict(), day, now=now, tz=engine.tz)
            details['market'] = {'market_id': market_id, 'status_counts': rollup.status_counts}

    return 'reevaluated', details


def handle_evidence_change_webhook():
    """
    Flask route handler for evidence change notifications.

    Validates the signature, maps the changed table to the worker and market
    it affects, re-evaluates them and refreshes the status hint cache.
    """
    try:
        webhook_secret = settings.webhooks.secret
        if not webhook_secret:
            logger.error("EVIDENCE_WEBHOOK_SECRET not configured")
            return jsonify({"error": "Webhook not configured"}), 500

        # Get raw request body for signature verification
        payload_body = request.get_data()
        signature_header = request.headers.get('x-hub-signature', '')

        if not verify_evidence_signature(payload_body, signature_header, webhook_secret):
            logger.warning(f"Invalid webhook signature from IP: {request.remote_addr}")
            return jsonify({"error": "Invalid signature"}), 401

        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            logger.error("Failed to parse evidence change payload")
            return jsonify({"error": "Invalid JSON"}), 400

        table = payload.get('table')
        record = payload.get('record') or {}
        if not table or not isinstance(record, dict):
            logger.error(f"Webhook payload missing table or record: {payload}")
            return jsonify({"error": "Missing table or record"}), 400

        logger.info(f"Received change notification for table {table}")

        engine = get_session_engine()
        try:
            outcome, details = asyncio.run(
                reevaluate_change(engine, get_cache_manager(), table, record, now_reporting(engine.tz))
            )
        except ValueError as e:
            # InvalidEvaluationTime included: a record dated in the future
            status_code = 422 if isinstance(e, InvalidEvaluationTime) else 400
            logger.warning(f"Rejected change notification for {table}: {e}")
            return jsonify({"error": str(e)}), status_code

        if outcome == 'ignored':
            logger.info(f"Ignoring change on {table}: {details.get('reason')}")

        return jsonify({"status": outcome, "table": table, **details}), 200

    except Exception as e:
        logger.error(f"Error handling evidence change webhook: {e}", exc_info=True)
        return jsonify({"error": "Internal server error"}), 500
