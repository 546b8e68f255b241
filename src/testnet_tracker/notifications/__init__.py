"""Notification ledger package."""

from .models import (
    Notification,
    NotificationDraft,
    NotificationKind,
    NotificationPriority,
)
from .repository import NotificationRepository

__all__ = [
    "Notification",
    "NotificationDraft",
    "NotificationKind",
    "NotificationPriority",
    "NotificationRepository",
]
