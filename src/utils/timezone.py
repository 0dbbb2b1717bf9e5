"""Reporting time zone utilities.

Every reporting obligation is tied to a civil date in a single fixed time
zone (IST by default), independent of the worker's or the server's clock.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional
import pytz

from config.settings import settings


IST = pytz.timezone("Asia/Kolkata")

# Last instant of a reporting day that still counts as "on time".
DEADLINE_TIME = time(23, 59, 59)


def get_reporting_timezone(name: Optional[str] = None):
    """Return the configured reporting time zone."""
    return pytz.timezone(name or settings.reporting.timezone)


def to_reporting_tz(dt: datetime, tz=None) -> datetime:
    """
    Convert a datetime to the reporting time zone.

    Args:
        dt: Datetime to convert (naive values are assumed to be UTC)
        tz: Target time zone (defaults to the configured reporting zone)

    Returns:
        Datetime in the reporting time zone
    """
    if dt is None:
        return None

    tz = tz or get_reporting_timezone()

    # If naive, assume UTC
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)

    return dt.astimezone(tz)


def reporting_date(dt: datetime, tz=None) -> date:
    """Civil reporting date that an instant falls on."""
    return to_reporting_tz(dt, tz).date()


def now_reporting(tz=None) -> datetime:
    """
    Get current time in the reporting time zone.

    Returns:
        Current aware datetime in the reporting zone
    """
    return datetime.now(tz or get_reporting_timezone())


def day_start(day: date, tz=None) -> datetime:
    """First instant (00:00:00) of a reporting day."""
    tz = tz or get_reporting_timezone()
    return tz.localize(datetime.combine(day, time.min))


def reporting_deadline(day: date, tz=None) -> datetime:
    """
    Deadline of a reporting day.

    Args:
        day: Civil reporting date
        tz: Reporting time zone

    Returns:
        Aware datetime for ``day`` at 23:59:59 in the reporting zone
    """
    tz = tz or get_reporting_timezone()
    return tz.localize(datetime.combine(day, DEADLINE_TIME))


def seconds_until_deadline(day: date, now: datetime, tz=None) -> int:
    """Whole seconds between ``now`` and the deadline of ``day`` (never negative)."""
    remaining = reporting_deadline(day, tz) - now
    return max(0, int(remaining / timedelta(seconds=1)))


def format_reporting_datetime(dt: datetime, tz=None) -> str:
    """
    Format datetime in the reporting zone.

    Returns:
        Formatted string like "January 15, 2025 at 2:30 PM IST"
    """
    if dt is None:
        return "N/A"

    local = to_reporting_tz(dt, tz)
    return f"{local.strftime('%B %d, %Y at %I:%M %p')} {local.strftime('%Z')}"
