"""Deadline arithmetic for recurring testnet participation.

Every function here is pure: the current instant is always passed in by the
caller, so the scheduler and the lifecycle service can run against a fake
clock in tests.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from dateutil.relativedelta import relativedelta

from .errors import InvalidRecurrenceError
from .utils.datetime_utils import ensure_utc

if TYPE_CHECKING:
    from .testnets.models import RecurringTask

OVERDUE_MARKER = "Overdue"
DEFAULT_REMINDER_HOURS = 12
MIN_REMINDER_HOURS = 1
MAX_REMINDER_HOURS = 168


class DeadlineMode(str, Enum):
    """Which instant the next deadline is measured from."""

    FIXED = "fixed"
    ROLLING = "rolling"


class RecurrenceRule(str, Enum):
    """How often a task recurs."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class UrgencyLevel(str, Enum):
    """Coarse classification of the time left before a deadline."""

    OVERDUE = "overdue"
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Calendar offsets are applied in wall-clock time so DST shifts keep the hour.
_CALENDAR_OFFSETS: dict[RecurrenceRule, relativedelta] = {
    RecurrenceRule.DAILY: relativedelta(days=1),
    RecurrenceRule.WEEKLY: relativedelta(days=7),
    RecurrenceRule.MONTHLY: relativedelta(months=1),
}


def _coerce_rule(value: RecurrenceRule | str | None) -> RecurrenceRule | None:
    if isinstance(value, RecurrenceRule):
        return value
    try:
        return RecurrenceRule(value)
    except ValueError:
        return None


def _coerce_mode(value: DeadlineMode | str | None) -> DeadlineMode:
    if isinstance(value, DeadlineMode):
        return value
    try:
        return DeadlineMode(value)
    except ValueError:
        return DeadlineMode.FIXED


def is_valid_custom_interval(hours: object) -> bool:
    """Return True when ``hours`` is a positive integer hour count."""
    return isinstance(hours, int) and not isinstance(hours, bool) and hours > 0


def compute_next_deadline(
    deadline_mode: DeadlineMode | str,
    recurrence_rule: RecurrenceRule | str,
    custom_interval_hours: Optional[int],
    last_completed_at: Optional[datetime],
    now: datetime,
    *,
    tz: tzinfo = timezone.utc,
) -> datetime:
    """Return the next deadline for a recurrence policy.

    Rolling deadlines are measured from ``last_completed_at`` when it is
    known; everything else is measured from ``now``. A custom rule without a
    positive integer interval, or an unrecognised rule, recurs daily.
    """

    mode = _coerce_mode(deadline_mode)
    rule = _coerce_rule(recurrence_rule)

    if mode is DeadlineMode.ROLLING and last_completed_at is not None:
        base = ensure_utc(last_completed_at)
    else:
        base = ensure_utc(now)

    if rule is RecurrenceRule.CUSTOM and is_valid_custom_interval(custom_interval_hours):
        return base + timedelta(hours=custom_interval_hours)  # type: ignore[arg-type]

    offset = _CALENDAR_OFFSETS.get(rule, _CALENDAR_OFFSETS[RecurrenceRule.DAILY])  # type: ignore[arg-type]
    local = base.astimezone(tz)
    return ensure_utc(local + offset)


def validate_recurrence(
    recurrence_rule: RecurrenceRule | str,
    custom_interval_hours: Optional[int],
) -> RecurrenceRule:
    """Reject recurrence policies that ``compute_next_deadline`` would silently coerce."""

    rule = _coerce_rule(recurrence_rule)
    if rule is None:
        raise InvalidRecurrenceError(f"Unknown recurrence rule: {recurrence_rule!r}")
    if rule is RecurrenceRule.CUSTOM and not is_valid_custom_interval(
        custom_interval_hours
    ):
        raise InvalidRecurrenceError(
            "Custom recurrence requires a positive whole number of hours, "
            f"got {custom_interval_hours!r}"
        )
    return rule


def validate_reminder_hours(hours: Optional[int]) -> Optional[int]:
    if hours is None:
        return None
    if not isinstance(hours, int) or isinstance(hours, bool):
        raise InvalidRecurrenceError(f"Reminder lead time must be whole hours, got {hours!r}")
    if not MIN_REMINDER_HOURS <= hours <= MAX_REMINDER_HOURS:
        raise InvalidRecurrenceError(
            f"Reminder lead time must be between {MIN_REMINDER_HOURS} and "
            f"{MAX_REMINDER_HOURS} hours, got {hours}"
        )
    return hours


def format_time_remaining(deadline: datetime, now: datetime) -> str:
    """Render the time left before ``deadline`` as ``1d 4h``, ``3h 20m`` or ``45m``."""

    remaining = ensure_utc(deadline) - ensure_utc(now)
    if remaining <= timedelta(0):
        return OVERDUE_MARKER

    total_minutes = int(remaining.total_seconds() // 60)
    days, minutes_left = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(minutes_left, 60)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def hours_until(deadline: datetime, now: datetime) -> float:
    return (ensure_utc(deadline) - ensure_utc(now)).total_seconds() / 3600


def get_urgency_level(deadline: datetime, now: datetime) -> UrgencyLevel:
    hours_remaining = hours_until(deadline, now)

    if hours_remaining <= 0:
        return UrgencyLevel.OVERDUE
    if hours_remaining <= 1:
        return UrgencyLevel.CRITICAL
    if hours_remaining <= 6:
        return UrgencyLevel.HIGH
    if hours_remaining <= 24:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


def calculate_reminder_time(
    deadline: datetime, reminder_hours: int = DEFAULT_REMINDER_HOURS
) -> datetime:
    """Return the instant ``reminder_hours`` before ``deadline``."""
    return ensure_utc(deadline) - timedelta(hours=reminder_hours)


def is_overdue(deadline: datetime, now: datetime) -> bool:
    return ensure_utc(deadline) < ensure_utc(now)


def hours_overdue(deadline: datetime, now: datetime) -> int:
    """Whole hours past ``deadline``, rounded up."""
    elapsed = (ensure_utc(now) - ensure_utc(deadline)).total_seconds() / 3600
    return math.ceil(elapsed)


def get_deadlines_in_range(
    tasks: Iterable["RecurringTask"], start: datetime, end: datetime
) -> list["RecurringTask"]:
    """Return the tasks whose next deadline lies within ``[start, end]``."""

    lower = ensure_utc(start)
    upper = ensure_utc(end)
    return [task for task in tasks if lower <= task.next_deadline <= upper]


def get_next_occurrence(
    hour: int, minute: int, now: datetime, *, tz: tzinfo = timezone.utc
) -> datetime:
    """Return the next wall-clock ``hour:minute`` in ``tz`` strictly after ``now``."""

    local_now = ensure_utc(now).astimezone(tz)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = candidate + relativedelta(days=1)
    return ensure_utc(candidate)


__all__ = [
    "OVERDUE_MARKER",
    "DEFAULT_REMINDER_HOURS",
    "DeadlineMode",
    "RecurrenceRule",
    "UrgencyLevel",
    "compute_next_deadline",
    "validate_recurrence",
    "validate_reminder_hours",
    "is_valid_custom_interval",
    "format_time_remaining",
    "hours_until",
    "get_urgency_level",
    "calculate_reminder_time",
    "is_overdue",
    "hours_overdue",
    "get_deadlines_in_range",
    "get_next_occurrence",
]
