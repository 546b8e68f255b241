"""Emit notifications: write the ledger record, then deliver best-effort."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Sequence

from ..notifications.models import (
    Notification,
    NotificationDraft,
    NotificationKind,
    NotificationPriority,
)
from ..notifications.repository import NotificationRepository
from ..schemas.preferences import NotificationPreferences
from ..utils.datetime_utils import Clock, utc_now
from .dispatchers import NotificationDispatcher

logger = logging.getLogger(__name__)


class NotificationService:
    """Store notifications and fan them out to the enabled delivery channels."""

    def __init__(
        self,
        repository: NotificationRepository,
        dispatchers: Sequence[NotificationDispatcher] = (),
        *,
        clock: Clock = utc_now,
        tz: tzinfo = timezone.utc,
        default_preferences: NotificationPreferences | None = None,
    ):
        self._repository = repository
        self._defaults = default_preferences or NotificationPreferences()
        self._dispatchers = list(dispatchers)
        self._clock = clock
        self._tz = tz

    @property
    def repository(self) -> NotificationRepository:
        return self._repository

    async def get_preferences(self, owner_id: str) -> NotificationPreferences:
        return await self._repository.get_preferences(owner_id, self._defaults)

    async def has_recent(
        self,
        owner_id: str,
        task_id: str,
        kind: NotificationKind,
        window: timedelta,
        now: datetime | None = None,
    ) -> bool:
        """Return True when ``kind`` was already recorded for the task within ``window``."""
        reference = now or self._clock()
        return await self._repository.has_recent(
            owner_id, task_id, kind, reference - window
        )

    async def emit(
        self,
        owner_id: str,
        draft: NotificationDraft,
        *,
        now: datetime | None = None,
    ) -> Notification:
        """Record ``draft`` for ``owner_id`` and deliver it if preferences allow.

        The ledger write always happens and its errors propagate. Delivery
        failures are logged and never raised.
        """

        reference = now or self._clock()
        notification = await self._repository.add_notification(
            owner_id, draft, reference
        )

        preferences = await self.get_preferences(owner_id)
        if not preferences.type_enabled(notification.kind.value):
            logger.debug(
                "Notification %s stored without delivery: %s disabled for %s",
                notification.notification_id,
                notification.kind.value,
                owner_id,
            )
            return notification

        local_time = reference.astimezone(self._tz).time()
        if (
            preferences.quiet_hours.contains(local_time)
            and notification.priority is not NotificationPriority.CRITICAL
        ):
            logger.debug(
                "Notification %s held back by quiet hours for %s",
                notification.notification_id,
                owner_id,
            )
            return notification

        await self._deliver(notification, preferences)
        return notification

    async def _deliver(
        self, notification: Notification, preferences: NotificationPreferences
    ) -> None:
        enabled = {
            "email": preferences.email_notifications,
            "push": preferences.push_notifications,
        }
        for dispatcher in self._dispatchers:
            if not enabled.get(dispatcher.channel, False):
                continue
            try:
                await dispatcher.dispatch(notification)
            except Exception:
                logger.warning(
                    "Failed to deliver notification %s via %s",
                    notification.notification_id,
                    dispatcher.channel,
                    exc_info=True,
                )


__all__ = ["NotificationService"]
