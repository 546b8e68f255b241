from datetime import timedelta

import pytest
from pydantic import ValidationError

from testnet_tracker.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "SCHEDULER_TIMEZONE",
        "REMINDER_SWEEP_MINUTES",
        "DEFAULT_REMINDER_HOURS",
        "WEEKLY_SUMMARY_DAY",
        "PUSH_WEBHOOK_URL",
    ):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.scheduler_enabled is True
    assert settings.reminder_sweep_minutes == 15
    assert settings.daily_summary_hour == 9
    assert settings.weekly_summary_day == "sun"
    assert settings.default_reminder_hours == 12
    assert settings.dedup_window == timedelta(hours=24)
    assert settings.overdue_escalation == timedelta(hours=24)
    assert settings.push_webhook_url is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SCHEDULER_TIMEZONE", "Europe/Berlin")
    monkeypatch.setenv("REMINDER_SWEEP_MINUTES", "5")
    monkeypatch.setenv("PUSH_WEBHOOK_URL", "https://relay.example/push")

    settings = Settings(_env_file=None)

    assert settings.scheduler_timezone == "Europe/Berlin"
    assert settings.reminder_sweep_minutes == 5
    assert str(settings.push_webhook_url) == "https://relay.example/push"


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("DEFAULT_REMINDER_HOURS", "0"),
        ("DEFAULT_REMINDER_HOURS", "169"),
        ("REMINDER_SWEEP_MINUTES", "90"),
        ("WEEKLY_SUMMARY_DAY", "someday"),
    ],
)
def test_out_of_range_values_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_reminder_sweep_accepts_hourly_cadence(monkeypatch):
    monkeypatch.setenv("REMINDER_SWEEP_MINUTES", "60")

    assert Settings(_env_file=None).reminder_sweep_minutes == 60
