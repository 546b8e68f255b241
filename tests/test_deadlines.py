"""Tests for the pure deadline arithmetic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from testnet_tracker.deadlines import (
    OVERDUE_MARKER,
    DeadlineMode,
    RecurrenceRule,
    UrgencyLevel,
    calculate_reminder_time,
    compute_next_deadline,
    format_time_remaining,
    get_deadlines_in_range,
    get_next_occurrence,
    get_urgency_level,
    hours_overdue,
    is_overdue,
    validate_recurrence,
    validate_reminder_hours,
)
from testnet_tracker.errors import InvalidRecurrenceError

T = datetime(2026, 3, 10, 8, 30, tzinfo=timezone.utc)


class TestComputeNextDeadline:
    @pytest.mark.parametrize(
        ("rule", "interval", "expected"),
        [
            (RecurrenceRule.DAILY, None, T + timedelta(days=1)),
            (RecurrenceRule.WEEKLY, None, T + timedelta(days=7)),
            (RecurrenceRule.MONTHLY, None, datetime(2026, 4, 10, 8, 30, tzinfo=timezone.utc)),
            (RecurrenceRule.CUSTOM, 36, T + timedelta(hours=36)),
        ],
    )
    def test_offsets_from_now_for_fixed_mode(self, rule, interval, expected):
        assert compute_next_deadline(DeadlineMode.FIXED, rule, interval, None, T) == expected

    @pytest.mark.parametrize("rule", list(RecurrenceRule))
    @pytest.mark.parametrize("mode", list(DeadlineMode))
    def test_result_is_strictly_after_base(self, rule, mode):
        interval = 5 if rule is RecurrenceRule.CUSTOM else None
        last_completed = T - timedelta(hours=3)
        result = compute_next_deadline(mode, rule, interval, last_completed, T)
        base = last_completed if mode is DeadlineMode.ROLLING else T
        assert result > base

    def test_rolling_bases_on_last_completion_not_now(self):
        now = T + timedelta(hours=100)
        result = compute_next_deadline(DeadlineMode.ROLLING, RecurrenceRule.DAILY, None, T, now)
        assert result == T + timedelta(hours=24)

    def test_rolling_without_completion_uses_now(self):
        result = compute_next_deadline(DeadlineMode.ROLLING, RecurrenceRule.WEEKLY, None, None, T)
        assert result == T + timedelta(days=7)

    def test_fixed_ignores_last_completion(self):
        last = T - timedelta(days=3)
        result = compute_next_deadline(DeadlineMode.FIXED, RecurrenceRule.DAILY, None, last, T)
        assert result == T + timedelta(days=1)

    @pytest.mark.parametrize("interval", [0, -4, None, 2.5, True])
    def test_invalid_custom_interval_falls_back_to_daily(self, interval):
        result = compute_next_deadline(DeadlineMode.FIXED, RecurrenceRule.CUSTOM, interval, None, T)
        assert result == T + timedelta(hours=24)

    def test_unknown_rule_falls_back_to_daily(self):
        result = compute_next_deadline("fixed", "fortnightly", None, None, T)
        assert result == T + timedelta(days=1)

    def test_accepts_plain_strings(self):
        result = compute_next_deadline("rolling", "custom", 6, T, T + timedelta(hours=1))
        assert result == T + timedelta(hours=6)

    def test_monthly_clamps_to_end_of_shorter_month(self):
        jan_31 = datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc)
        result = compute_next_deadline(DeadlineMode.FIXED, RecurrenceRule.MONTHLY, None, None, jan_31)
        assert result == datetime(2026, 2, 28, 9, 0, tzinfo=timezone.utc)

    def test_daily_keeps_wall_clock_hour_across_dst(self):
        eastern = ZoneInfo("America/New_York")
        # 09:00 EST on the day before the 2026 spring-forward change.
        before = datetime(2026, 3, 7, 9, 0, tzinfo=eastern).astimezone(timezone.utc)
        result = compute_next_deadline(
            DeadlineMode.FIXED, RecurrenceRule.DAILY, None, None, before, tz=eastern
        )
        assert result.astimezone(eastern).hour == 9
        assert result - before == timedelta(hours=23)
        assert result.tzinfo == timezone.utc

    def test_custom_interval_is_absolute_hours_across_dst(self):
        eastern = ZoneInfo("America/New_York")
        before = datetime(2026, 3, 7, 9, 0, tzinfo=eastern).astimezone(timezone.utc)
        result = compute_next_deadline(
            DeadlineMode.FIXED, RecurrenceRule.CUSTOM, 24, None, before, tz=eastern
        )
        assert result - before == timedelta(hours=24)

    def test_is_deterministic(self):
        first = compute_next_deadline("fixed", "monthly", None, None, T)
        second = compute_next_deadline("fixed", "monthly", None, None, T)
        assert first == second

    def test_naive_inputs_are_treated_as_utc(self):
        naive = T.replace(tzinfo=None)
        result = compute_next_deadline("fixed", "daily", None, None, naive)
        assert result == T + timedelta(days=1)


class TestFormatTimeRemaining:
    def test_equal_instants_are_overdue(self):
        assert format_time_remaining(T, T) == OVERDUE_MARKER

    def test_past_deadline_is_overdue(self):
        assert format_time_remaining(T - timedelta(minutes=5), T) == "Overdue"

    def test_hours_and_minutes(self):
        assert format_time_remaining(T + timedelta(minutes=90), T) == "1h 30m"

    def test_days_and_hours(self):
        assert format_time_remaining(T + timedelta(days=2, hours=5, minutes=59), T) == "2d 5h"

    def test_minutes_only(self):
        assert format_time_remaining(T + timedelta(minutes=45, seconds=59), T) == "45m"

    def test_sub_minute_renders_zero_minutes(self):
        assert format_time_remaining(T + timedelta(seconds=30), T) == "0m"

    def test_exact_day_has_zero_hours(self):
        assert format_time_remaining(T + timedelta(days=1), T) == "1d 0h"


class TestUrgencyLevel:
    @pytest.mark.parametrize(
        ("offset", "expected"),
        [
            (timedelta(0), UrgencyLevel.OVERDUE),
            (timedelta(minutes=-1), UrgencyLevel.OVERDUE),
            (timedelta(minutes=30), UrgencyLevel.CRITICAL),
            (timedelta(hours=1), UrgencyLevel.CRITICAL),
            (timedelta(hours=1, seconds=1), UrgencyLevel.HIGH),
            (timedelta(hours=6), UrgencyLevel.HIGH),
            (timedelta(hours=6, seconds=1), UrgencyLevel.MEDIUM),
            (timedelta(hours=24), UrgencyLevel.MEDIUM),
            (timedelta(hours=24, seconds=1), UrgencyLevel.LOW),
        ],
    )
    def test_thresholds(self, offset, expected):
        assert get_urgency_level(T + offset, T) is expected


class TestReminderAndOverdueHelpers:
    def test_reminder_time_defaults_to_twelve_hours(self):
        assert calculate_reminder_time(T) == T - timedelta(hours=12)

    def test_reminder_time_custom_lead(self):
        assert calculate_reminder_time(T, 3) == T - timedelta(hours=3)

    def test_is_overdue_is_strict(self):
        assert is_overdue(T - timedelta(seconds=1), T)
        assert not is_overdue(T, T)

    def test_hours_overdue_rounds_up(self):
        assert hours_overdue(T - timedelta(hours=25), T) == 25
        assert hours_overdue(T - timedelta(hours=2, minutes=1), T) == 3

    def test_deadlines_in_range_is_inclusive(self):
        tasks = [
            SimpleNamespace(name="a", next_deadline=T),
            SimpleNamespace(name="b", next_deadline=T + timedelta(hours=5)),
            SimpleNamespace(name="c", next_deadline=T + timedelta(hours=6)),
        ]
        selected = get_deadlines_in_range(tasks, T, T + timedelta(hours=5))
        assert [task.name for task in selected] == ["a", "b"]

    def test_next_occurrence_later_today(self):
        assert get_next_occurrence(9, 0, T - timedelta(hours=1)) == datetime(
            2026, 3, 10, 9, 0, tzinfo=timezone.utc
        )

    def test_next_occurrence_rolls_to_tomorrow(self):
        assert get_next_occurrence(8, 30, T) == T + timedelta(days=1)


class TestValidation:
    def test_custom_requires_positive_interval(self):
        with pytest.raises(InvalidRecurrenceError):
            validate_recurrence("custom", 0)

    def test_unknown_rule_rejected(self):
        with pytest.raises(InvalidRecurrenceError):
            validate_recurrence("hourly", None)

    def test_valid_rule_returned_as_enum(self):
        assert validate_recurrence("weekly", None) is RecurrenceRule.WEEKLY

    @pytest.mark.parametrize("hours", [0, 169, 2.5])
    def test_reminder_hours_bounds(self, hours):
        with pytest.raises(InvalidRecurrenceError):
            validate_reminder_hours(hours)

    def test_reminder_hours_none_allowed(self):
        assert validate_reminder_hours(None) is None
        assert validate_reminder_hours(168) == 168
