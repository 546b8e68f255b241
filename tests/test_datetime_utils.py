"""Tests for the datetime_utils module."""

from __future__ import annotations

import datetime
from zoneinfo import ZoneInfo

from testnet_tracker.utils.datetime_utils import (
    ensure_utc,
    parse_db_timestamp,
    resolve_timezone,
    to_db_timestamp,
    to_optional_db_timestamp,
)


class TestEnsureUtc:
    def test_naive_is_assumed_utc(self):
        result = ensure_utc(datetime.datetime(2026, 1, 1, 9, 0))
        assert result.tzinfo == datetime.timezone.utc
        assert result.hour == 9

    def test_offset_is_converted(self):
        eastern = datetime.datetime(2026, 1, 1, 9, 0, tzinfo=ZoneInfo("America/New_York"))
        assert ensure_utc(eastern).hour == 14


class TestDbTimestamps:
    def test_fixed_precision(self):
        value = datetime.datetime(2026, 1, 1, 9, 0, tzinfo=datetime.timezone.utc)
        assert to_db_timestamp(value) == "2026-01-01T09:00:00.000000+00:00"

    def test_lexical_order_matches_time_order(self):
        base = datetime.datetime(2026, 1, 1, 9, 0, tzinfo=datetime.timezone.utc)
        later = base + datetime.timedelta(microseconds=1)
        offset = datetime.datetime(2026, 1, 1, 4, 0, 1, tzinfo=ZoneInfo("America/New_York"))
        rendered = sorted([to_db_timestamp(offset), to_db_timestamp(later), to_db_timestamp(base)])
        assert rendered == [to_db_timestamp(base), to_db_timestamp(later), to_db_timestamp(offset)]

    def test_optional(self):
        assert to_optional_db_timestamp(None) is None

    def test_parse_returns_utc(self):
        parsed = parse_db_timestamp("2026-01-01T09:00:00.000000+02:00")
        assert parsed == datetime.datetime(2026, 1, 1, 7, 0, tzinfo=datetime.timezone.utc)

    def test_parse_invalid_and_none(self):
        assert parse_db_timestamp(None) is None
        assert parse_db_timestamp("not a timestamp") is None


class TestResolveTimezone:
    def test_known_zone(self):
        assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")

    def test_unknown_zone_uses_fallback(self):
        fallback = ZoneInfo("Asia/Tokyo")
        assert resolve_timezone("Mars/Olympus", fallback) is fallback

    def test_empty_defaults_to_utc(self):
        assert resolve_timezone(None) is datetime.timezone.utc
