"""Domain models representing recurring testnet tasks."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..deadlines import DeadlineMode, RecurrenceRule, UrgencyLevel


class TaskStatus(str, Enum):
    """Lifecycle states for a recurring task."""

    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    PAUSED = "paused"


class OwnerCounter(str, Enum):
    """Aggregate counters kept per owner."""

    TOTAL_TESTNETS = "total_testnets"
    COMPLETED_TESTNETS = "completed_testnets"
    MISSED_DEADLINES = "missed_deadlines"


@dataclass(slots=True)
class RecurringTask:
    """A user-owned unit of recurring work with a single upcoming deadline."""

    id: str
    owner_id: str
    name: str
    recurrence_rule: RecurrenceRule
    deadline_mode: DeadlineMode
    next_deadline: datetime.datetime
    status: TaskStatus
    created_at: datetime.datetime
    updated_at: datetime.datetime
    category: str = "other"
    network: str = ""
    description: str = ""
    custom_interval_hours: Optional[int] = None
    reminder_hours: Optional[int] = None
    last_completed_at: Optional[datetime.datetime] = None
    completion_count: int = 0
    missed_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status is TaskStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "category": self.category,
            "network": self.network,
            "description": self.description,
            "recurrence_rule": self.recurrence_rule.value,
            "custom_interval_hours": self.custom_interval_hours,
            "deadline_mode": self.deadline_mode.value,
            "reminder_hours": self.reminder_hours,
            "next_deadline": self.next_deadline.isoformat(),
            "status": self.status.value,
            "last_completed_at": (
                self.last_completed_at.isoformat() if self.last_completed_at else None
            ),
            "completion_count": self.completion_count,
            "missed_count": self.missed_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class OwnerStats:
    """Aggregate counters for one owner."""

    owner_id: str
    total_testnets: int = 0
    completed_testnets: int = 0
    missed_deadlines: int = 0


@dataclass(slots=True)
class TaskStats:
    """Per-owner breakdown of tasks by status, network and category."""

    total: int = 0
    active: int = 0
    completed: int = 0
    overdue: int = 0
    paused: int = 0
    total_completions: int = 0
    total_missed: int = 0
    networks: dict[str, int] = field(default_factory=dict)
    categories: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class UpcomingDeadline:
    """An active task due soon, with its remaining time rendered for display."""

    task: RecurringTask
    time_remaining: str
    urgency: UrgencyLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.task.id,
            "name": self.task.name,
            "network": self.task.network,
            "next_deadline": self.task.next_deadline.isoformat(),
            "time_remaining": self.time_remaining,
            "urgency": self.urgency.value,
        }


__all__ = [
    "TaskStatus",
    "OwnerCounter",
    "RecurringTask",
    "OwnerStats",
    "TaskStats",
    "UpcomingDeadline",
]
