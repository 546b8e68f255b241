"""Testnet domain package consolidating recurring task storage and lifecycle."""

from .models import (
    OwnerCounter,
    OwnerStats,
    RecurringTask,
    TaskStats,
    TaskStatus,
    UpcomingDeadline,
)
from .repository import TaskRepository
from .service import TestnetService

__all__ = [
    "RecurringTask",
    "TaskStatus",
    "OwnerCounter",
    "OwnerStats",
    "TaskStats",
    "UpcomingDeadline",
    "TaskRepository",
    "TestnetService",
]
