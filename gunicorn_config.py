"""
Gunicorn configuration for the market session monitor.

This config ensures the live market monitor only runs in ONE worker so hints
are not refreshed four times over. On PostgreSQL an advisory lock picks the
worker; elsewhere the first worker starts it.
"""

import logging
import os

logger = logging.getLogger(__name__)

# Gunicorn server settings
bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"
workers = 4
timeout = 120
worker_class = 'sync'

# Logging
loglevel = 'info'
accesslog = '-'
errorlog = '-'

SCHEDULER_LOCK_ID = 482910377


def post_worker_init(worker):
    """
    Called after a worker has been initialized.
    Only the worker that acquires the lock starts the monitor scheduler.
    """
    from src.services.scheduler import start_scheduler

    try:
        from sqlalchemy import text
        from src.utils.database import get_engine

        engine = get_engine()
        if engine.dialect.name != 'postgresql':
            if worker.age == 0:
                logger.info(f"Starting monitor scheduler in worker {worker.pid} (first worker)")
                start_scheduler()
            return

        # Keep the connection open for the worker's lifetime to hold the lock
        conn = engine.connect()
        acquired = conn.execute(text("SELECT pg_try_advisory_lock(:lock_id)"), {"lock_id": SCHEDULER_LOCK_ID}).scalar()

        if acquired:
            logger.info(f"Worker {worker.pid} acquired PostgreSQL advisory lock")
            worker.scheduler_db_conn = conn
            start_scheduler()
        else:
            logger.info(f"Worker {worker.pid} - scheduler already running in another worker")
            conn.close()

    except Exception as e:
        logger.error(f"Error in post_worker_init for worker {worker.pid}: {e}")
        logger.warning("Falling back to first-worker scheduler start")
        if worker.age == 0:
            try:
                logger.info(f"Starting scheduler in worker {worker.pid} (fallback mode)")
                start_scheduler()
            except Exception as e2:
                logger.error(f"Failed to start scheduler: {e2}")


def worker_exit(server, worker):
    """
    Called when a worker is exiting.
    Clean up the scheduler if it was running in this worker, then release
    the evidence query pool and database connections.
    """
    try:
        from src.services.scheduler import get_scheduler, stop_scheduler

        if get_scheduler():
            logger.info(f"Stopping scheduler in worker {worker.pid}")
            stop_scheduler()

        conn = getattr(worker, 'scheduler_db_conn', None)
        if conn is not None:
            try:
                from sqlalchemy import text

                conn.execute(text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": SCHEDULER_LOCK_ID})
                logger.info(f"Released PostgreSQL advisory lock from worker {worker.pid}")
                conn.close()
            except Exception as e:
                logger.error(f"Error releasing PostgreSQL advisory lock: {e}")

    except Exception as e:
        logger.error(f"Error stopping scheduler in worker {worker.pid}: {e}")

    try:
        from src.services.session_engine import shutdown_session_engine
        from src.utils.database import cleanup_connections

        shutdown_session_engine()
        cleanup_connections()
    except Exception as e:
        logger.error(f"Error releasing database resources in worker {worker.pid}: {e}")
