"""Timestamp normalization shared by the repositories and services.

Every instant the tracker handles is an aware datetime in UTC. SQLite has no
native timestamp type, so values are stored as ISO-8601 strings with a fixed
microsecond precision; this keeps lexical ordering identical to time ordering
and lets range filters run directly in SQL.
"""

from __future__ import annotations

import datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    """Return the current instant as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def ensure_utc(value: datetime.datetime) -> datetime.datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)


def to_db_timestamp(value: datetime.datetime) -> str:
    """Render ``value`` in the canonical storage format."""
    return ensure_utc(value).isoformat(timespec="microseconds")


def to_optional_db_timestamp(value: Optional[datetime.datetime]) -> Optional[str]:
    if value is None:
        return None
    return to_db_timestamp(value)


def parse_db_timestamp(value: str | None) -> datetime.datetime | None:
    """Parse a timestamp stored in SQLite and normalize to UTC.

    Args:
        value: SQLite timestamp string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
    """
    if value is None:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(value)
    except ValueError:
        return None
    return ensure_utc(parsed)


def resolve_timezone(
    timezone_name: Optional[str],
    fallback: Optional[datetime.tzinfo] = None,
) -> datetime.tzinfo:
    """Resolve ``timezone_name`` to a tzinfo, falling back to UTC."""

    if timezone_name:
        try:
            return ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError):
            pass

    if fallback is not None:
        return fallback

    return datetime.timezone.utc


__all__ = [
    "Clock",
    "utc_now",
    "ensure_utc",
    "to_db_timestamp",
    "to_optional_db_timestamp",
    "parse_db_timestamp",
    "resolve_timezone",
]
