from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import httpx
import pytest

from conftest import BASE_TIME, RecordingDispatcher
from testnet_tracker.notifications.models import (
    NotificationDraft,
    NotificationKind,
    NotificationPriority,
)
from testnet_tracker.schemas.preferences import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    QuietHours,
)
from testnet_tracker.services.dispatchers import DispatchError, WebhookDispatcher
from testnet_tracker.services.notifications import NotificationService


def _draft(kind=NotificationKind.REMINDER, priority=NotificationPriority.MEDIUM):
    return NotificationDraft(kind=kind, title="Title", message="Body", priority=priority, task_id="task-1")


@pytest.mark.anyio
async def test_emit_stores_and_delivers_on_all_channels(notification_service, dispatchers):
    notification = await notification_service.emit("owner-1", _draft())

    assert notification.created_at == BASE_TIME
    assert [len(d.delivered) for d in dispatchers] == [1, 1]
    assert await notification_service.has_recent(
        "owner-1", "task-1", NotificationKind.REMINDER, timedelta(hours=24)
    )


@pytest.mark.anyio
async def test_disabled_kind_is_stored_but_not_delivered(
    notification_service, notification_repository, dispatchers
):
    await notification_repository.update_preferences(
        "owner-1",
        NotificationPreferencesUpdate(notification_types={"reminder": False}),
        BASE_TIME,
    )

    await notification_service.emit("owner-1", _draft())

    assert all(not d.delivered for d in dispatchers)
    assert len(await notification_repository.list_for_owner("owner-1")) == 1


@pytest.mark.anyio
async def test_channel_switches_respected(notification_service, notification_repository, dispatchers):
    await notification_repository.update_preferences(
        "owner-1", NotificationPreferencesUpdate(email_notifications=False), BASE_TIME
    )

    await notification_service.emit("owner-1", _draft())

    email, push = dispatchers
    assert email.delivered == []
    assert len(push.delivered) == 1


@pytest.mark.anyio
async def test_quiet_hours_hold_back_non_critical(notification_service, notification_repository, dispatchers):
    # BASE_TIME is 12:00 UTC
    await notification_repository.update_preferences(
        "owner-1",
        NotificationPreferencesUpdate(quiet_hours=QuietHours(enabled=True, start="11:00", end="13:00")),
        BASE_TIME,
    )

    await notification_service.emit("owner-1", _draft(priority=NotificationPriority.HIGH))
    assert all(not d.delivered for d in dispatchers)

    await notification_service.emit("owner-1", _draft(priority=NotificationPriority.CRITICAL))
    assert [len(d.delivered) for d in dispatchers] == [1, 1]


@pytest.mark.anyio
async def test_quiet_hours_use_service_timezone(notification_repository, clock):
    dispatcher = RecordingDispatcher("push")
    service = NotificationService(
        notification_repository, [dispatcher], clock=clock, tz=ZoneInfo("Asia/Tokyo")
    )
    # 12:00 UTC is 21:00 in Tokyo, inside a 20:00-23:00 window.
    await notification_repository.update_preferences(
        "owner-1",
        NotificationPreferencesUpdate(quiet_hours=QuietHours(enabled=True, start="20:00", end="23:00")),
        BASE_TIME,
    )

    await service.emit("owner-1", _draft())

    assert dispatcher.delivered == []


@pytest.mark.anyio
async def test_dispatch_failure_does_not_raise(notification_repository, clock):
    failing = RecordingDispatcher("email", fail=True)
    working = RecordingDispatcher("push")
    service = NotificationService(notification_repository, [failing, working], clock=clock)

    notification = await service.emit("owner-1", _draft())

    assert notification.notification_id
    assert len(working.delivered) == 1


@pytest.mark.anyio
async def test_default_preferences_apply_when_none_stored(notification_repository, clock):
    service = NotificationService(
        notification_repository,
        clock=clock,
        default_preferences=NotificationPreferences(reminder_hours=4),
    )

    preferences = await service.get_preferences("owner-unknown")

    assert preferences.reminder_hours == 4


@pytest.mark.parametrize(
    ("start", "end", "moment", "expected"),
    [
        ("22:00", "08:00", "23:30", True),
        ("22:00", "08:00", "07:59", True),
        ("22:00", "08:00", "12:00", False),
        ("09:00", "17:00", "17:00", True),
        ("09:00", "17:00", "08:59", False),
    ],
)
def test_quiet_hours_window(start, end, moment, expected):
    quiet = QuietHours(enabled=True, start=start, end=end)
    assert quiet.contains(datetime.strptime(moment, "%H:%M").time()) is expected


def test_quiet_hours_reject_bad_format():
    with pytest.raises(ValueError):
        QuietHours(start="25:00")


@pytest.mark.anyio
async def test_webhook_dispatcher_posts_json(notification_repository):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    notification = await notification_repository.add_notification("owner-1", _draft(), BASE_TIME)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        dispatcher = WebhookDispatcher("push", "https://relay.example/push", client=client)
        await dispatcher.dispatch(notification)

    assert len(seen) == 1
    assert seen[0].url == "https://relay.example/push"
    assert b'"channel":"push"' in seen[0].content.replace(b" ", b"")


@pytest.mark.anyio
async def test_webhook_dispatcher_raises_on_error_status(notification_repository):
    notification = await notification_repository.add_notification("owner-1", _draft(), BASE_TIME)
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
    async with httpx.AsyncClient(transport=transport) as client:
        dispatcher = WebhookDispatcher("email", "https://relay.example/email", client=client)
        with pytest.raises(DispatchError):
            await dispatcher.dispatch(notification)


def test_notification_to_dict_uses_enum_values():
    from testnet_tracker.notifications.models import Notification

    notification = Notification(
        notification_id="n-1",
        owner_id="owner-1",
        kind=NotificationKind.OVERDUE,
        title="t",
        message="m",
        priority=NotificationPriority.HIGH,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )

    payload = notification.to_dict()

    assert payload["kind"] == "overdue"
    assert payload["priority"] == "high"
    assert payload["created_at"] == "2026-01-01T00:00:00+00:00"
