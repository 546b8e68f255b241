"""Application configuration using environment variables."""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

Weekday = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_path: Path = Field(
        default_factory=lambda: Path("data/tracker.db"),
        validation_alias=AliasChoices("TRACKER_DATABASE_PATH", "database_path"),
    )

    scheduler_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("SCHEDULER_ENABLED", "scheduler_enabled"),
    )
    scheduler_timezone: str = Field(
        default="UTC",
        validation_alias=AliasChoices("SCHEDULER_TIMEZONE", "scheduler_timezone"),
        description="IANA zone used for cron triggers, calendar arithmetic and quiet hours.",
    )
    reminder_sweep_minutes: int = Field(
        default=15,
        ge=1,
        le=60,
        validation_alias=AliasChoices(
            "REMINDER_SWEEP_MINUTES", "reminder_sweep_minutes"
        ),
    )
    daily_summary_hour: int = Field(
        default=9,
        ge=0,
        le=23,
        validation_alias=AliasChoices("DAILY_SUMMARY_HOUR", "daily_summary_hour"),
    )
    weekly_summary_day: Weekday = Field(
        default="sun",
        validation_alias=AliasChoices("WEEKLY_SUMMARY_DAY", "weekly_summary_day"),
    )
    weekly_summary_hour: int = Field(
        default=10,
        ge=0,
        le=23,
        validation_alias=AliasChoices("WEEKLY_SUMMARY_HOUR", "weekly_summary_hour"),
    )

    default_reminder_hours: int = Field(
        default=12,
        ge=1,
        le=168,
        validation_alias=AliasChoices(
            "DEFAULT_REMINDER_HOURS", "default_reminder_hours"
        ),
    )
    dedup_window_hours: int = Field(
        default=24,
        ge=1,
        validation_alias=AliasChoices("DEDUP_WINDOW_HOURS", "dedup_window_hours"),
    )
    overdue_escalation_hours: int = Field(
        default=24,
        ge=0,
        validation_alias=AliasChoices(
            "OVERDUE_ESCALATION_HOURS", "overdue_escalation_hours"
        ),
    )

    # Delivery relays (optional; notifications are only logged without them)
    push_webhook_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("PUSH_WEBHOOK_URL", "push_webhook_url"),
    )
    email_webhook_url: Optional[AnyHttpUrl] = Field(
        default=None,
        validation_alias=AliasChoices("EMAIL_WEBHOOK_URL", "email_webhook_url"),
    )
    webhook_timeout: float = Field(
        default=10.0,
        ge=1,
        validation_alias=AliasChoices("WEBHOOK_TIMEOUT", "webhook_timeout"),
    )

    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices(
            "LOGGING_SETTINGS_PATH", "logging_settings_path"
        ),
    )
    log_dir: Path = Field(
        default_factory=lambda: Path("logs"),
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(hours=self.dedup_window_hours)

    @property
    def overdue_escalation(self) -> timedelta:
        return timedelta(hours=self.overdue_escalation_hours)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()


__all__ = ["Settings", "get_settings", "PROJECT_ROOT"]
