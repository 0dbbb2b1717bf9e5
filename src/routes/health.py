"""Health check and diagnostic endpoints."""

from flask import Blueprint, jsonify
from datetime import datetime
import logging

from config.settings import settings

logger = logging.getLogger(__name__)

# Create blueprint
health_bp = Blueprint('health', __name__, url_prefix='/api')


@health_bp.route('/health', methods=['GET'])
def health_check():
    """Basic liveness check."""
    try:
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.now().isoformat(),
            'reporting_timezone': settings.reporting.timezone,
        }), 200
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'error': str(e)
        }), 500


@health_bp.route('/health/database', methods=['GET'])
def database_health_check():
    """Database connectivity and connection pool statistics.

    Evaluations fan out one short read per evidence source, so pool
    saturation is the first thing to check when rollups slow down.
    """
    try:
        from src.utils.database import get_engine
        from sqlalchemy import text

        engine = get_engine()
        pool = engine.pool

        pool_stats = {'pool_class': pool.__class__.__name__, 'pool_status': 'healthy'}

        # SQLite pools do not report sizes
        if hasattr(pool, 'size') and hasattr(pool, '_max_overflow'):
            pool_stats.update({
                'pool_size': pool.size(),
                'checked_in': pool.checkedin(),
                'checked_out': pool.checkedout(),
                'overflow': pool.overflow(),
                'max_overflow': pool._max_overflow,
            })

            total_capacity = pool.size() + pool._max_overflow
            total_in_use = pool.checkedout() + max(0, pool.overflow())
            if total_capacity > 0:
                pool_stats['utilization_percent'] = round((total_in_use / total_capacity) * 100, 2)

                # Warn if pool is >80% utilized
                if pool_stats['utilization_percent'] > 80:
                    pool_stats['pool_status'] = 'warning'
                    pool_stats['warning'] = 'Pool utilization is high (>80%)'

        # Test database connectivity with a simple query
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
                pool_stats['connectivity'] = 'healthy'
        except Exception as db_error:
            pool_stats['connectivity'] = 'unhealthy'
            pool_stats['connectivity_error'] = str(db_error)
            pool_stats['pool_status'] = 'unhealthy'

        status_code = 200 if pool_stats['pool_status'] in ['healthy', 'warning'] else 503

        return jsonify({
            'status': pool_stats['pool_status'],
            'timestamp': datetime.now().isoformat(),
            'database': pool_stats
        }), status_code

    except Exception as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.now().isoformat()
        }), 503
