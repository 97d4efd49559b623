"""
Date helpers for Holded payloads.

Holded encodes dates inconsistently: Unix seconds, Unix milliseconds, ISO
strings, and occasionally already-parsed objects. Everything is normalized
to one ISO 8601 string before it reaches the database layer.
"""

import logging
from datetime import UTC, date, datetime, timedelta
from typing import Any

from .etl import parse_date

logger = logging.getLogger(__name__)

# Timestamps above this are already in milliseconds.
MILLISECONDS_THRESHOLD = 1_000_000_000_000


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def utc_today() -> date:
    """Current calendar date in UTC."""
    return utc_now().date()


def to_iso(dt: datetime) -> str:
    """Render a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def convert_holded_date(value: Any) -> str | None:
    """
    Normalize a Holded date value to an ISO 8601 string.

    - int, or a string of digits: Unix timestamp; values greater than
      ``MILLISECONDS_THRESHOLD`` are milliseconds, smaller ones seconds
    - string containing ``-``: assumed ISO already, returned unchanged
    - ``datetime``/``date``: rendered as ISO
    - anything else (including ``None``, ``""`` and ``0``): ``None``
    """
    if value is None or isinstance(value, bool) or value == "" or value == 0:
        return None

    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        timestamp = int(value)
        if timestamp > MILLISECONDS_THRESHOLD:
            seconds, millis = divmod(timestamp, 1000)
        else:
            seconds, millis = timestamp, 0
        try:
            dt = datetime.fromtimestamp(seconds, UTC) + timedelta(milliseconds=millis)
        except (OverflowError, OSError, ValueError):
            logger.warning(f"Timestamp out of range: {value}")
            return None
        return to_iso(dt)

    if isinstance(value, str) and "-" in value:
        return value

    if isinstance(value, datetime):
        return to_iso(value)

    if isinstance(value, date):
        return value.isoformat()

    return None


def to_calendar_date(value: Any) -> date | None:
    """Calendar date (UTC) of any Holded date encoding, ``None`` if unusable."""
    parsed = parse_date(convert_holded_date(value))
    if parsed is None:
        return None
    return parsed.astimezone(UTC).date()


def is_valid_date(value: Any) -> bool:
    """Whether ``value`` parses as a date."""
    if not value:
        return False
    return parse_date(value) is not None


def format_duration(delta: timedelta) -> str:
    """Format a duration as a short human readable string."""
    total_seconds = int(delta.total_seconds())

    if total_seconds < 60:
        return f"{total_seconds}s"
    if total_seconds < 3600:
        minutes, seconds = divmod(total_seconds, 60)
        return f"{minutes}m {seconds}s"

    hours, remainder = divmod(total_seconds, 3600)
    return f"{hours}h {remainder // 60}m"
