"""Notification records and the drafts the scheduler emits."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class NotificationKind(str, Enum):
    """Notification categories; ``reminder`` and ``overdue`` are de-duplicated per task."""

    REMINDER = "reminder"
    OVERDUE = "overdue"
    SYSTEM = "system"
    ACHIEVEMENT = "achievement"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(slots=True)
class NotificationDraft:
    """Content of a notification before it is written to the ledger."""

    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    task_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Notification:
    """A stored notification; doubles as the de-duplication ledger entry."""

    notification_id: str
    owner_id: str
    kind: NotificationKind
    title: str
    message: str
    priority: NotificationPriority
    created_at: datetime.datetime
    task_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "notification_id": self.notification_id,
            "owner_id": self.owner_id,
            "kind": self.kind.value,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value,
            "task_id": self.task_id,
            "metadata": self.metadata,
            "read": self.read,
            "created_at": self.created_at.isoformat(),
        }


__all__ = [
    "NotificationKind",
    "NotificationPriority",
    "NotificationDraft",
    "Notification",
]
