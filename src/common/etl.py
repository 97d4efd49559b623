"""
Shared ETL utilities for data transformation and extraction.

Provides the coercion helpers used to turn loosely typed Holded payloads
into clean invoice rows, plus small collection helpers.
"""

import logging
import re
from collections.abc import Callable, Hashable, Iterable, Sequence
from datetime import UTC, date, datetime
from typing import Any, Optional

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date value supporting common API date formats.

    Accepts ISO 8601 strings (with or without time, ``Z`` suffix or offset),
    ``YYYY-MM-DD HH:MM:SS`` strings, and ``datetime``/``date`` objects.
    Naive results are assumed to be UTC.

    Examples:
        >>> parse_date("2024-01-15T10:30:00Z")
        datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
        >>> parse_date("2024-01-15")
        datetime(2024, 1, 15, 0, 0, tzinfo=UTC)
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                parsed = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def coerce_float(value: Any, default: float = 0.0) -> float:
    """
    Coerce a value to float, reading a leading number from strings.

    Mirrors the lenient behaviour of Holded's own exports: ``"12.5 EUR"``
    reads as 12.5 and anything without a leading number yields ``default``.

    Examples:
        >>> coerce_float("95.0")
        95.0
        >>> coerce_float("abc")
        0.0
        >>> coerce_float(None)
        0.0
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return default
        try:
            number = float(match.group(1))
        except ValueError:
            return default

    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


def coerce_text(value: Any, default: str = "") -> str:
    """Coerce a value to a trimmed string, ``default`` for None."""
    if value is None:
        return default
    return str(value).strip()


def first_present(record: dict | None, accessors: Sequence[Callable[[dict], Any]]) -> Any:
    """
    Return the first non-empty value produced by ``accessors``.

    Each accessor receives ``record`` and may return ``None``/``""`` to pass
    to the next one. Used for source fields that appear under several names.
    """
    if not record:
        return None
    for accessor in accessors:
        value = accessor(record)
        if value is not None and value != "":
            return value
    return None


def field(name: str) -> Callable[[dict], Any]:
    """Accessor reading a top-level key, for use with ``first_present``."""

    def _get(record: dict) -> Any:
        value = record.get(name)
        return value.strip() if isinstance(value, str) else value

    _get.__name__ = f"field_{name}"
    return _get


def dedupe_by_key(items: Iterable[dict], key: str = "id") -> list[dict]:
    """
    Remove duplicates by ``key``, keeping the first occurrence.

    Items lacking the key are kept as-is since they cannot collide.
    """
    seen: set[Hashable] = set()
    unique = []
    for item in items:
        item_key = item.get(key)
        if item_key is None:
            unique.append(item)
            continue
        if item_key in seen:
            continue
        seen.add(item_key)
        unique.append(item)
    return unique
