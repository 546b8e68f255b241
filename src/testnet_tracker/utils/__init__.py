"""Utility helpers for tracker services."""

from .datetime_utils import (
    Clock,
    ensure_utc,
    parse_db_timestamp,
    resolve_timezone,
    to_db_timestamp,
    utc_now,
)

__all__ = [
    "Clock",
    "ensure_utc",
    "parse_db_timestamp",
    "resolve_timezone",
    "to_db_timestamp",
    "utc_now",
]
