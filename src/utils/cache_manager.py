"""Session status hint cache using Redis.

Stores the last computed worker-day and market evaluations so dashboards can
show something immediately. Entries are hints only: they expire at the
reporting deadline at the latest and are ignored once that deadline has
passed, because an ``active`` day silently becomes ``incomplete_expired`` at
midnight without any new evidence.
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

import redis

from config.settings import settings
from src.utils.timezone import now_reporting, reporting_deadline, seconds_until_deadline

logger = logging.getLogger(__name__)

KEY_PREFIX = "session_hint"


class CacheManager:
    """Manages status hint caching using Redis."""

    def __init__(self, redis_url: Optional[str] = None, ttl: Optional[int] = None, enabled: Optional[bool] = None):
        """Initialize cache manager.

        Args:
            redis_url: Redis connection URL (defaults to REDIS_URL)
            ttl: Upper bound on hint lifetime in seconds (defaults to STATUS_CACHE_TTL)
            enabled: Set False to turn caching off (defaults to STATUS_CACHE_ENABLED)
        """
        self.redis_url = redis_url or settings.cache.redis_url
        self.ttl = ttl if ttl is not None else settings.cache.status_ttl_seconds
        self._client = None
        self._enabled = settings.cache.enabled if enabled is None else enabled

        if not self._enabled:
            logger.info("Status hint cache disabled by configuration")
            return

        # Try to connect, but don't fail if Redis is unavailable
        try:
            self._connect()
            logger.info(f"Cache manager initialized: {self._mask_url(self.redis_url)}")
        except Exception as e:
            logger.warning(f"Redis connection failed (caching disabled): {e}")
            self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _mask_url(self, url: str) -> str:
        """Mask password in Redis URL for logging."""
        if "@" in url and "://" in url:
            protocol, rest = url.split("://", 1)
            if "@" in rest:
                auth, host = rest.rsplit("@", 1)
                return f"{protocol}://***:***@{host}"
        return url

    def _connect(self):
        """Establish Redis connection."""
        if self._client is None:
            self._client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            self._client.ping()

    @staticmethod
    def worker_key(worker_id: str, day: date) -> str:
        return f"{KEY_PREFIX}:worker:{worker_id}:{day.isoformat()}"

    @staticmethod
    def market_key(market_id: str, day: date) -> str:
        return f"{KEY_PREFIX}:market:{market_id}:{day.isoformat()}"

    @staticmethod
    def market_pattern(market_id: str) -> str:
        return f"{KEY_PREFIX}:market:{market_id}:*"

    def get_hint(self, key: str, day: date, now: Optional[datetime] = None, tz=None) -> Optional[Dict[str, Any]]:
        """Retrieve a cached evaluation for ``day``.

        Args:
            key: Cache key from worker_key() or market_key()
            day: Reporting date the hint belongs to
            now: Aware evaluation instant (defaults to the current time)
            tz: Reporting time zone

        Returns:
            Cached payload, or None on a miss, when disabled, or once the
            day's deadline has passed
        """
        if not self._enabled:
            return None

        now = now or now_reporting(tz)
        if now > reporting_deadline(day, tz):
            logger.debug(f"Cache BYPASS (past deadline): {key}")
            return None

        try:
            if self._client is None:
                self._connect()

            data = self._client.get(key)
            if data is None:
                logger.debug(f"Cache MISS: {key}")
                return None

            logger.info(f"Cache HIT: {key}")
            return json.loads(data)

        except Exception as e:
            logger.error(f"Error retrieving from cache: {e}")
            return None

    def set_hint(
        self, key: str, payload: Dict[str, Any], day: date, now: Optional[datetime] = None, tz=None
    ) -> bool:
        """Store an evaluation until the configured TTL or the day's deadline, whichever is sooner.

        Returns:
            True if stored, False when disabled, past the deadline, or on error
        """
        if not self._enabled:
            return False

        now = now or now_reporting(tz)
        ttl = min(self.ttl, seconds_until_deadline(day, now, tz))
        if ttl <= 0:
            logger.debug(f"Cache SKIP (past deadline): {key}")
            return False

        try:
            if self._client is None:
                self._connect()

            cached_data = {
                "data": payload,
                "cached_at": now.isoformat(),
                "ttl": ttl,
            }
            self._client.setex(key, ttl, json.dumps(cached_data))
            logger.info(f"Cache SET: {key} (TTL: {ttl}s)")
            return True

        except Exception as e:
            logger.error(f"Error storing in cache: {e}")
            return False

    def invalidate(self, pattern: str) -> int:
        """Invalidate cache keys matching pattern.

        Args:
            pattern: Redis key pattern (e.g., 'session_hint:market:*')

        Returns:
            Number of keys deleted
        """
        if not self._enabled:
            return 0

        try:
            if self._client is None:
                self._connect()

            keys = self._client.keys(pattern)
            if keys:
                deleted = self._client.delete(*keys)
                logger.info(f"Cache INVALIDATE: {pattern} ({deleted} keys deleted)")
                return deleted
            return 0

        except Exception as e:
            logger.error(f"Error invalidating cache: {e}")
            return 0

    def clear_all(self) -> bool:
        """Clear all status hints."""
        return self.invalidate(f"{KEY_PREFIX}:*") >= 0


# Singleton instance
_cache_manager: Optional[CacheManager] = None


def get_cache_manager(redis_url: Optional[str] = None) -> CacheManager:
    """Get or create the global cache manager."""
    global _cache_manager

    if _cache_manager is None:
        _cache_manager = CacheManager(redis_url=redis_url)

    return _cache_manager
