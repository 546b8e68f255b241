"""Owner notification preference schemas."""

from __future__ import annotations

import re
from datetime import time

from pydantic import BaseModel, Field, field_validator

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _default_notification_types() -> dict[str, bool]:
    return {
        "reminder": True,
        "overdue": True,
        "system": True,
        "achievement": True,
    }


class QuietHours(BaseModel):
    """Daily window during which non-critical notifications are not delivered."""

    enabled: bool = False
    start: str = Field(default="22:00", description="Local start time as HH:MM.")
    end: str = Field(default="08:00", description="Local end time as HH:MM.")

    @field_validator("start", "end")
    @classmethod
    def _validate_clock(cls, value: str) -> str:
        if not _HHMM.match(value):
            raise ValueError("quiet hours must use 24-hour HH:MM format")
        return value

    def contains(self, moment: time) -> bool:
        """Return True when ``moment`` falls inside the window (bounds included)."""
        if not self.enabled:
            return False
        current = moment.strftime("%H:%M")
        if self.start <= self.end:
            return self.start <= current <= self.end
        # Window wraps past midnight, e.g. 22:00-08:00.
        return current >= self.start or current <= self.end


class NotificationPreferences(BaseModel):
    """Per-owner delivery and reminder preferences."""

    email_notifications: bool = True
    push_notifications: bool = True
    deadline_reminders: bool = True
    reminder_hours: int = Field(
        default=12,
        ge=1,
        le=168,
        description="Hours before a deadline at which the reminder is sent.",
    )
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    notification_types: dict[str, bool] = Field(
        default_factory=_default_notification_types
    )

    def type_enabled(self, kind: str) -> bool:
        """Kinds absent from the toggle map count as enabled."""
        return self.notification_types.get(kind, True) is not False


class NotificationPreferencesUpdate(BaseModel):
    """Partial update schema - all fields optional."""

    email_notifications: bool | None = None
    push_notifications: bool | None = None
    deadline_reminders: bool | None = None
    reminder_hours: int | None = Field(default=None, ge=1, le=168)
    quiet_hours: QuietHours | None = None
    notification_types: dict[str, bool] | None = None


__all__ = [
    "QuietHours",
    "NotificationPreferences",
    "NotificationPreferencesUpdate",
]
