#!/usr/bin/env python3
"""Market session monitor command line."""

import asyncio
import logging
import argparse
import json
import time
from datetime import date, datetime
from typing import Optional

from config.settings import settings
from src.services.session_engine import SessionEngine, get_session_engine
from src.services.session_errors import InvalidEvaluationTime, MarketNotFound
from src.utils.timezone import now_reporting, reporting_date


logger = logging.getLogger(__name__)


def _parse_now(value: Optional[str], engine: SessionEngine) -> datetime:
    if not value:
        return now_reporting(engine.tz)
    return datetime.fromisoformat(value)


def _parse_day(value: Optional[str], now: datetime, engine: SessionEngine) -> date:
    if value:
        return date.fromisoformat(value)
    return reporting_date(now, engine.tz)


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_worker(args, engine: SessionEngine) -> int:
    """Evaluate one worker-day."""
    now = _parse_now(args.now, engine)
    day = _parse_day(args.date, now, engine)
    evaluation = asyncio.run(engine.evaluate_worker_day(args.worker_id, args.role, day, now, market_id=args.market_id))
    _print(evaluation.to_dict())
    return 0


def cmd_market(args, engine: SessionEngine) -> int:
    """Roll up one market."""
    now = _parse_now(args.now, engine)
    day = _parse_day(args.date, now, engine)
    rollup = asyncio.run(engine.evaluate_market(args.market_id, day, now))
    _print(rollup.to_dict())
    return 0


def cmd_live(args, engine: SessionEngine) -> int:
    """Roll up every market scheduled on the date."""
    now = _parse_now(args.now, engine)
    day = _parse_day(args.date, now, engine)
    rollups = asyncio.run(engine.evaluate_live_markets(day, now))
    if not rollups:
        print(f"No markets scheduled on {day.isoformat()} ({engine.gate.describe()})")
        return 0
    _print([rollup.to_dict() for rollup in rollups])
    return 0


def cmd_monitor(args, engine: SessionEngine) -> int:
    """Run the live market monitor once, or on its schedule until interrupted."""
    from src.jobs.live_market_monitor import LiveMarketMonitorJob
    from src.services.scheduler import MonitorScheduler

    if args.once:
        stats = LiveMarketMonitorJob(engine=engine).run()
        _print(stats)
        return 0 if stats.get("success") else 1

    monitor = MonitorScheduler(job_factory=lambda: LiveMarketMonitorJob(engine=engine))
    monitor.refresh_live_markets()
    monitor.start()
    logger.info("Live market monitor running - press Ctrl+C to stop")
    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        logger.info("Stopping live market monitor")
    finally:
        monitor.stop()
    return 0


def cmd_init_db(args, engine: SessionEngine) -> int:
    """Create the database tables."""
    from src.utils.database import init_database

    return 0 if init_database() else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Market Session Monitor - field worker reporting status")
    parser.add_argument("--log-level", default=settings.agent.log_level, help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_time_arguments(sub):
        sub.add_argument("--date", help="Reporting date (YYYY-MM-DD), defaults to today in the reporting zone")
        sub.add_argument("--now", help="Evaluation instant (ISO 8601 with offset), defaults to the current time")

    worker = subparsers.add_parser("worker", help="Evaluate one worker's session")
    worker.add_argument("worker_id")
    worker.add_argument("--role", help="Worker role (looked up when omitted)")
    worker.add_argument("--market-id", help="Narrow evidence to one market")
    add_time_arguments(worker)
    worker.set_defaults(func=cmd_worker)

    market = subparsers.add_parser("market", help="Roll up one market")
    market.add_argument("market_id")
    add_time_arguments(market)
    market.set_defaults(func=cmd_market)

    live = subparsers.add_parser("live", help="Roll up every market scheduled on the date")
    add_time_arguments(live)
    live.set_defaults(func=cmd_live)

    monitor = subparsers.add_parser("monitor", help="Run the live market monitor")
    monitor.add_argument("--once", action="store_true", help="Run once and exit")
    monitor.set_defaults(func=cmd_monitor)

    init_db = subparsers.add_parser("init-db", help="Create database tables")
    init_db.set_defaults(func=cmd_init_db)

    return parser


def main(argv=None, engine: Optional[SessionEngine] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    engine = engine or get_session_engine()
    try:
        return args.func(args, engine)
    except MarketNotFound as e:
        logger.error(str(e))
        return 2
    except InvalidEvaluationTime as e:
        logger.error(f"Invalid evaluation time: {e}")
        return 2
    except ValueError as e:
        logger.error(f"Invalid argument: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
