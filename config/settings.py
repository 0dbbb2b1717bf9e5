"""Configuration management for the market session monitor."""

import os
from dataclasses import dataclass, field
from typing import Optional, List
from dotenv import load_dotenv

load_dotenv()


WEEKDAY_NAMES = [
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
]


@dataclass
class ReportingConfig:
    """Reporting day rules shared by every evaluation."""

    timezone: str = "Asia/Kolkata"
    # Python weekday numbers (Monday=0). Markets do not operate on these days.
    closed_weekdays: List[int] = field(default_factory=lambda: [0])
    evidence_timeout_seconds: float = 5.0
    max_concurrent_evaluations: int = 20


@dataclass
class CacheConfig:
    """Redis status hint cache configuration."""

    redis_url: str = "redis://localhost:6379/0"
    enabled: bool = True
    status_ttl_seconds: int = 60


@dataclass
class WebhookConfig:
    """Evidence change webhook configuration."""

    secret: Optional[str] = None


@dataclass
class WebConfig:
    """Web interface configuration."""

    base_url: str = "http://localhost:3030"
    port: int = 3030
    host: str = "127.0.0.1"
    debug: bool = True


@dataclass
class AgentConfig:
    """Main agent configuration."""

    monitor_interval_minutes: int = 5
    log_level: str = "INFO"
    database_url: str = "sqlite:///database/market_sessions.db"


def parse_weekdays(value: str) -> List[int]:
    """Parse a comma-separated list of weekday names or numbers.

    Accepts "monday", "mon", "0" style entries. An empty string means no
    closed days.
    """
    weekdays = []
    for raw in value.split(","):
        token = raw.strip().lower()
        if not token:
            continue
        if token.isdigit():
            number = int(token)
            if not 0 <= number <= 6:
                raise ValueError(f"Weekday number out of range: {token}")
            weekdays.append(number)
            continue
        matches = [i for i, name in enumerate(WEEKDAY_NAMES) if name.startswith(token)]
        if len(matches) != 1:
            raise ValueError(f"Unrecognised weekday: {raw.strip()}")
        weekdays.append(matches[0])
    return sorted(set(weekdays))


class Settings:
    """Main settings manager."""

    def __init__(self):
        self.reporting = self._load_reporting_config()
        self.cache = self._load_cache_config()
        self.webhooks = self._load_webhook_config()
        self.agent = self._load_agent_config()
        self.web = self._load_web_config()

    @staticmethod
    def _load_reporting_config() -> ReportingConfig:
        return ReportingConfig(
            timezone=os.getenv("REPORTING_TIMEZONE") or "Asia/Kolkata",
            closed_weekdays=parse_weekdays(os.getenv("CLOSED_WEEKDAYS", "monday")),
            evidence_timeout_seconds=float(
                os.getenv("EVIDENCE_TIMEOUT_SECONDS", "5.0")
            ),
            max_concurrent_evaluations=int(
                os.getenv("MAX_CONCURRENT_EVALUATIONS", "20")
            ),
        )

    @staticmethod
    def _load_cache_config() -> CacheConfig:
        return CacheConfig(
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            enabled=os.getenv("STATUS_CACHE_ENABLED", "true").lower() == "true",
            status_ttl_seconds=int(os.getenv("STATUS_CACHE_TTL", "60")),
        )

    @staticmethod
    def _load_webhook_config() -> WebhookConfig:
        # Handle empty string env vars by treating them as None
        return WebhookConfig(secret=os.getenv("EVIDENCE_WEBHOOK_SECRET") or None)

    @staticmethod
    def _load_agent_config() -> AgentConfig:
        return AgentConfig(
            monitor_interval_minutes=int(os.getenv("MONITOR_INTERVAL_MINUTES", "5")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            database_url=os.getenv(
                "DATABASE_URL", "sqlite:///database/market_sessions.db"
            ),
        )

    @staticmethod
    def _load_web_config() -> WebConfig:
        return WebConfig(
            base_url=os.getenv("WEB_BASE_URL", "http://localhost:3030"),
            port=int(os.getenv("WEB_PORT", "3030")),
            host=os.getenv("WEB_HOST", "127.0.0.1"),
            debug=os.getenv("WEB_DEBUG", "true").lower() == "true",
        )


settings = Settings()
