"""Exceptions raised by the tracker domain services."""

from __future__ import annotations


class TrackerError(RuntimeError):
    """Base class for errors raised by tracker services."""


class InvalidRecurrenceError(TrackerError, ValueError):
    """Raised when a recurrence policy is rejected at the service boundary."""


class TaskNotFoundError(TrackerError):
    """Raised when a task id does not resolve to a stored task."""


class TaskAccessError(TrackerError):
    """Raised when an owner acts on a task that belongs to someone else."""


__all__ = [
    "TrackerError",
    "InvalidRecurrenceError",
    "TaskNotFoundError",
    "TaskAccessError",
]
