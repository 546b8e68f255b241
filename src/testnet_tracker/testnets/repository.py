"""SQLite-backed repository for recurring tasks and owner counters."""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from ..deadlines import DeadlineMode, RecurrenceRule
from ..utils.datetime_utils import (
    ensure_utc,
    parse_db_timestamp,
    to_db_timestamp,
    to_optional_db_timestamp,
)
from .models import OwnerCounter, OwnerStats, RecurringTask, TaskStatus

# Columns that may be changed through ``update_task``.
_UPDATABLE_COLUMNS = frozenset(
    {
        "name",
        "category",
        "network",
        "description",
        "recurrence_rule",
        "custom_interval_hours",
        "deadline_mode",
        "reminder_hours",
        "next_deadline",
        "status",
        "last_completed_at",
        "completion_count",
        "missed_count",
    }
)


def _to_column(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_db_timestamp(value)
    if isinstance(value, (TaskStatus, RecurrenceRule, DeadlineMode)):
        return value.value
    return value


class TaskRepository:
    """Persist and retrieve recurring tasks from SQLite."""

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
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT 'other',
                network TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                recurrence_rule TEXT NOT NULL,
                custom_interval_hours INTEGER,
                deadline_mode TEXT NOT NULL,
                reminder_hours INTEGER,
                next_deadline TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                last_completed_at TEXT,
                completion_count INTEGER NOT NULL DEFAULT 0,
                missed_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_status_deadline
                ON tasks(status, next_deadline);
            CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id);

            CREATE TABLE IF NOT EXISTS owners (
                owner_id TEXT PRIMARY KEY,
                total_testnets INTEGER NOT NULL DEFAULT 0,
                completed_testnets INTEGER NOT NULL DEFAULT 0,
                missed_deadlines INTEGER NOT NULL DEFAULT 0,
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

    def _row_to_task(self, row: aiosqlite.Row) -> RecurringTask:
        """Convert a database row to a RecurringTask object."""
        return RecurringTask(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            category=row["category"],
            network=row["network"],
            description=row["description"],
            recurrence_rule=RecurrenceRule(row["recurrence_rule"]),
            custom_interval_hours=row["custom_interval_hours"],
            deadline_mode=DeadlineMode(row["deadline_mode"]),
            reminder_hours=row["reminder_hours"],
            next_deadline=parse_db_timestamp(row["next_deadline"]),  # type: ignore[arg-type]
            status=TaskStatus(row["status"]),
            last_completed_at=parse_db_timestamp(row["last_completed_at"]),
            completion_count=row["completion_count"],
            missed_count=row["missed_count"],
            created_at=parse_db_timestamp(row["created_at"]),  # type: ignore[arg-type]
            updated_at=parse_db_timestamp(row["updated_at"]),  # type: ignore[arg-type]
        )

    async def _fetch_tasks(self, query: str, params: tuple[Any, ...]) -> list[RecurringTask]:
        assert self._connection is not None

        cursor = await self._connection.execute(query, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return [self._row_to_task(row) for row in rows]

    async def create_task(
        self,
        *,
        owner_id: str,
        name: str,
        recurrence_rule: RecurrenceRule,
        deadline_mode: DeadlineMode,
        next_deadline: datetime,
        created_at: datetime,
        category: str = "other",
        network: str = "",
        description: str = "",
        custom_interval_hours: Optional[int] = None,
        reminder_hours: Optional[int] = None,
        status: TaskStatus = TaskStatus.ACTIVE,
        last_completed_at: Optional[datetime] = None,
    ) -> RecurringTask:
        """Insert a new task and return it."""
        assert self._connection is not None

        task = RecurringTask(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            name=name,
            category=category,
            network=network,
            description=description,
            recurrence_rule=recurrence_rule,
            custom_interval_hours=custom_interval_hours,
            deadline_mode=deadline_mode,
            reminder_hours=reminder_hours,
            next_deadline=ensure_utc(next_deadline),
            status=status,
            last_completed_at=(
                ensure_utc(last_completed_at) if last_completed_at else None
            ),
            created_at=ensure_utc(created_at),
            updated_at=ensure_utc(created_at),
        )

        await self._connection.execute(
            """
            INSERT INTO tasks (
                id, owner_id, name, category, network, description,
                recurrence_rule, custom_interval_hours, deadline_mode,
                reminder_hours, next_deadline, status, last_completed_at,
                completion_count, missed_count, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 0, ?, ?)
            """,
            (
                task.id,
                task.owner_id,
                task.name,
                task.category,
                task.network,
                task.description,
                task.recurrence_rule.value,
                task.custom_interval_hours,
                task.deadline_mode.value,
                task.reminder_hours,
                to_db_timestamp(task.next_deadline),
                task.status.value,
                to_optional_db_timestamp(task.last_completed_at),
                to_db_timestamp(task.created_at),
                to_db_timestamp(task.updated_at),
            ),
        )
        await self._connection.commit()
        return task

    async def get_task(self, task_id: str) -> RecurringTask | None:
        """Retrieve a single task by ID."""
        tasks = await self._fetch_tasks("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return tasks[0] if tasks else None

    async def list_active_due_before(self, bound: datetime) -> list[RecurringTask]:
        """Active tasks whose deadline is at or before ``bound``."""
        return await self._fetch_tasks(
            """
            SELECT * FROM tasks
            WHERE status = ? AND next_deadline <= ?
            ORDER BY next_deadline ASC
            """,
            (TaskStatus.ACTIVE.value, to_db_timestamp(bound)),
        )

    async def list_active_overdue(self, now: datetime) -> list[RecurringTask]:
        """Active tasks whose deadline is strictly before ``now``."""
        return await self._fetch_tasks(
            """
            SELECT * FROM tasks
            WHERE status = ? AND next_deadline < ?
            ORDER BY next_deadline ASC
            """,
            (TaskStatus.ACTIVE.value, to_db_timestamp(now)),
        )

    async def list_active_due_between(
        self, start: datetime, end: datetime
    ) -> list[RecurringTask]:
        """Active tasks with ``start <= next_deadline < end``."""
        return await self._fetch_tasks(
            """
            SELECT * FROM tasks
            WHERE status = ? AND next_deadline >= ? AND next_deadline < ?
            ORDER BY next_deadline ASC
            """,
            (TaskStatus.ACTIVE.value, to_db_timestamp(start), to_db_timestamp(end)),
        )

    async def list_tasks_for_owner(self, owner_id: str) -> list[RecurringTask]:
        return await self._fetch_tasks(
            "SELECT * FROM tasks WHERE owner_id = ? ORDER BY created_at ASC",
            (owner_id,),
        )

    async def list_owner_ids(self) -> list[str]:
        """Every owner known either by counters or by owning a task."""
        assert self._connection is not None

        cursor = await self._connection.execute(
            """
            SELECT owner_id FROM owners
            UNION
            SELECT DISTINCT owner_id FROM tasks
            ORDER BY owner_id
            """
        )
        rows = await cursor.fetchall()
        await cursor.close()
        return [row["owner_id"] for row in rows]

    async def update_task(self, task_id: str, now: datetime, **fields: Any) -> bool:
        """Update the given columns of a task and stamp ``updated_at``."""
        assert self._connection is not None

        unknown = set(fields) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update task columns: {sorted(unknown)}")

        assignments = [f"{column} = ?" for column in fields]
        params = [_to_column(value) for value in fields.values()]
        assignments.append("updated_at = ?")
        params.append(to_db_timestamp(now))
        params.append(task_id)

        cursor = await self._connection.execute(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?",
            tuple(params),
        )
        updated = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(updated)

    async def mark_overdue(self, task_id: str, now: datetime) -> bool:
        """Flip an active task to overdue and count the miss.

        Returns False when the task was no longer active, so a concurrent
        sweep cannot count the same miss twice.
        """
        assert self._connection is not None

        cursor = await self._connection.execute(
            """
            UPDATE tasks
            SET status = ?, missed_count = missed_count + 1, updated_at = ?
            WHERE id = ? AND status = ?
            """,
            (
                TaskStatus.OVERDUE.value,
                to_db_timestamp(now),
                task_id,
                TaskStatus.ACTIVE.value,
            ),
        )
        updated = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(updated)

    async def record_completion(
        self, task_id: str, completed_at: datetime, next_deadline: datetime
    ) -> bool:
        """Store a completion and the recomputed deadline."""
        assert self._connection is not None

        cursor = await self._connection.execute(
            """
            UPDATE tasks
            SET last_completed_at = ?,
                next_deadline = ?,
                completion_count = completion_count + 1,
                status = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (
                to_db_timestamp(completed_at),
                to_db_timestamp(next_deadline),
                TaskStatus.ACTIVE.value,
                to_db_timestamp(completed_at),
                task_id,
            ),
        )
        updated = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(updated)

    async def increment_owner_counter(
        self,
        owner_id: str,
        counter: OwnerCounter,
        now: datetime,
        amount: int = 1,
    ) -> None:
        """Increment one of the owner's aggregate counters, creating the row if needed."""
        assert self._connection is not None

        column = OwnerCounter(counter).value
        await self._connection.execute(
            f"""
            INSERT INTO owners (owner_id, {column}, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(owner_id) DO UPDATE
            SET {column} = {column} + excluded.{column},
                updated_at = excluded.updated_at
            """,
            (owner_id, amount, to_db_timestamp(now)),
        )
        await self._connection.commit()

    async def get_owner_stats(self, owner_id: str) -> OwnerStats:
        assert self._connection is not None

        cursor = await self._connection.execute(
            "SELECT * FROM owners WHERE owner_id = ?",
            (owner_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()

        if row is None:
            return OwnerStats(owner_id=owner_id)
        return OwnerStats(
            owner_id=owner_id,
            total_testnets=row["total_testnets"],
            completed_testnets=row["completed_testnets"],
            missed_deadlines=row["missed_deadlines"],
        )

    async def delete_task(self, task_id: str) -> bool:
        assert self._connection is not None

        cursor = await self._connection.execute(
            "DELETE FROM tasks WHERE id = ?", (task_id,)
        )
        deleted = cursor.rowcount
        await cursor.close()
        await self._connection.commit()
        return bool(deleted)


__all__ = ["TaskRepository"]
