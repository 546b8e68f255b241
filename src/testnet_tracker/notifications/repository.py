"""SQLite-backed notification ledger and owner preference store."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

import aiosqlite

from ..schemas.preferences import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
)
from ..utils.datetime_utils import ensure_utc, parse_db_timestamp, to_db_timestamp
from .models import (
    Notification,
    NotificationDraft,
    NotificationKind,
    NotificationPriority,
)


class NotificationRepository:
    """Persist notifications and per-owner notification preferences."""

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""
        if self._connection is not None:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._create_schema()

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS notifications (
                notification_id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                priority TEXT NOT NULL DEFAULT 'medium',
                task_id TEXT,
                metadata TEXT NOT NULL DEFAULT '{}',
                read INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_notifications_ledger
                ON notifications(owner_id, task_id, kind, created_at);

            CREATE TABLE IF NOT EXISTS notification_preferences (
                owner_id TEXT PRIMARY KEY,
                settings TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _row_to_notification(self, row: aiosqlite.Row) -> Notification:
        return Notification(
            notification_id=row["notification_id"],
            owner_id=row["owner_id"],
            kind=NotificationKind(row["kind"]),
            title=row["title"],
            message=row["message"],
            priority=NotificationPriority(row["priority"]),
            task_id=row["task_id"],
            metadata=json.loads(row["metadata"] or "{}"),
            read=bool(row["read"]),
            created_at=parse_db_timestamp(row["created_at"]),  # type: ignore[arg-type]
        )

    async def add_notification(
        self, owner_id: str, draft: NotificationDraft, created_at: datetime
    ) -> Notification:
        """Write a notification to the ledger."""
        assert self._connection is not None

        notification = Notification(
            notification_id=str(uuid.uuid4()),
            owner_id=owner_id,
            kind=draft.kind,
            title=draft.title,
            message=draft.message,
            priority=draft.priority,
            task_id=draft.task_id,
            metadata=dict(draft.metadata),
            created_at=ensure_utc(created_at),
        )

        await self._connection.execute(
            """
            INSERT INTO notifications (
                notification_id, owner_id, kind, title, message,
                priority, task_id, metadata, read, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (
                notification.notification_id,
                owner_id,
                notification.kind.value,
                notification.title,
                notification.message,
                notification.priority.value,
                notification.task_id,
                json.dumps(notification.metadata, default=str),
                to_db_timestamp(notification.created_at),
            ),
        )
        await self._connection.commit()
        return notification

    async def has_recent(
        self,
        owner_id: str,
        task_id: str,
        kind: NotificationKind,
        since: datetime,
    ) -> bool:
        """Return True when a ``kind`` record exists for the task since ``since``."""
        assert self._connection is not None

        cursor = await self._connection.execute(
            """
            SELECT 1 FROM notifications
            WHERE owner_id = ? AND task_id = ? AND kind = ? AND created_at >= ?
            LIMIT 1
            """,
            (owner_id, task_id, NotificationKind(kind).value, to_db_timestamp(since)),
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    async def list_for_owner(
        self,
        owner_id: str,
        *,
        kind: Optional[NotificationKind] = None,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        """Most recent notifications for an owner, newest first."""
        assert self._connection is not None

        clauses = ["owner_id = ?"]
        params: list[object] = [owner_id]
        if kind is not None:
            clauses.append("kind = ?")
            params.append(NotificationKind(kind).value)
        if unread_only:
            clauses.append("read = 0")
        params.append(limit)

        cursor = await self._connection.execute(
            f"""
            SELECT * FROM notifications
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at DESC
            LIMIT ?
            """,
            tuple(params),
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [self._row_to_notification(row) for row in rows]

    async def mark_read(self, notification_id: str) -> bool:
        assert self._connection is not None

        cursor = await self._connection.execute(
            "UPDATE notifications SET read = 1 WHERE notification_id = ? AND read = 0",
            (notification_id,),
        )
        updated = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(updated)

    async def get_preferences(
        self,
        owner_id: str,
        defaults: Optional[NotificationPreferences] = None,
    ) -> NotificationPreferences:
        """Return the owner's preferences, or ``defaults`` when none are stored."""
        assert self._connection is not None

        cursor = await self._connection.execute(
            "SELECT settings FROM notification_preferences WHERE owner_id = ?",
            (owner_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()

        if row is None:
            return (defaults or NotificationPreferences()).model_copy(deep=True)
        return NotificationPreferences.model_validate_json(row["settings"])

    async def save_preferences(
        self, owner_id: str, preferences: NotificationPreferences, now: datetime
    ) -> None:
        assert self._connection is not None

        await self._connection.execute(
            """
            INSERT INTO notification_preferences (owner_id, settings, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(owner_id) DO UPDATE
            SET settings = excluded.settings, updated_at = excluded.updated_at
            """,
            (owner_id, preferences.model_dump_json(), to_db_timestamp(now)),
        )
        await self._connection.commit()

    async def update_preferences(
        self,
        owner_id: str,
        update: NotificationPreferencesUpdate,
        now: datetime,
        defaults: Optional[NotificationPreferences] = None,
    ) -> NotificationPreferences:
        """Merge a partial update into the stored preferences."""
        current = await self.get_preferences(owner_id, defaults)
        update_data = update.model_dump(exclude_unset=True)

        if update_data:
            new_data = current.model_dump()
            if "notification_types" in update_data:
                update_data["notification_types"] = {
                    **new_data["notification_types"],
                    **update_data["notification_types"],
                }
            new_data.update(update_data)
            current = NotificationPreferences(**new_data)
            await self.save_preferences(owner_id, current, now)

        return current


__all__ = ["NotificationRepository"]
