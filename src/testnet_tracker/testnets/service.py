"""Lifecycle operations for recurring testnet tasks."""

from __future__ import annotations

import logging
from datetime import timedelta, timezone, tzinfo
from typing import Optional

from ..deadlines import (
    DeadlineMode,
    RecurrenceRule,
    compute_next_deadline,
    format_time_remaining,
    get_deadlines_in_range,
    get_urgency_level,
    validate_recurrence,
    validate_reminder_hours,
)
from ..errors import InvalidRecurrenceError, TaskAccessError, TaskNotFoundError
from ..utils.datetime_utils import Clock, utc_now
from .models import (
    OwnerCounter,
    RecurringTask,
    TaskStats,
    TaskStatus,
    UpcomingDeadline,
)
from .repository import TaskRepository

logger = logging.getLogger(__name__)


def _coerce_mode(value: DeadlineMode | str) -> DeadlineMode:
    try:
        return DeadlineMode(value)
    except ValueError as exc:
        raise InvalidRecurrenceError(f"Unknown deadline mode: {value!r}") from exc


class TestnetService:
    """Create, complete and reschedule recurring tasks.

    Recurrence policies are validated here, so a bad custom interval is
    rejected instead of silently recurring daily.
    """

    # Keep pytest from collecting this class because of its name.
    __test__ = False

    def __init__(
        self,
        repository: TaskRepository,
        *,
        clock: Clock = utc_now,
        tz: tzinfo = timezone.utc,
    ):
        self._repository = repository
        self._clock = clock
        self._tz = tz

    async def _owned_task(self, task_id: str, owner_id: str) -> RecurringTask:
        task = await self._repository.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found")
        if task.owner_id != owner_id:
            raise TaskAccessError(f"Task {task_id} does not belong to {owner_id}")
        return task

    async def create_task(
        self,
        owner_id: str,
        name: str,
        recurrence_rule: RecurrenceRule | str,
        deadline_mode: DeadlineMode | str = DeadlineMode.FIXED,
        *,
        custom_interval_hours: Optional[int] = None,
        reminder_hours: Optional[int] = None,
        category: str = "other",
        network: str = "",
        description: str = "",
    ) -> RecurringTask:
        """Create an active task with its first deadline computed from now."""
        rule = validate_recurrence(recurrence_rule, custom_interval_hours)
        mode = _coerce_mode(deadline_mode)
        validate_reminder_hours(reminder_hours)

        now = self._clock()
        next_deadline = compute_next_deadline(
            mode, rule, custom_interval_hours, None, now, tz=self._tz
        )
        task = await self._repository.create_task(
            owner_id=owner_id,
            name=name,
            recurrence_rule=rule,
            deadline_mode=mode,
            next_deadline=next_deadline,
            created_at=now,
            category=category or "other",
            network=network,
            description=description,
            custom_interval_hours=(
                custom_interval_hours if rule is RecurrenceRule.CUSTOM else None
            ),
            reminder_hours=reminder_hours,
        )
        await self._repository.increment_owner_counter(
            owner_id, OwnerCounter.TOTAL_TESTNETS, now
        )
        logger.info("Created task %s for %s due %s", task.id, owner_id, next_deadline)
        return task

    async def complete_task(self, task_id: str, owner_id: str) -> RecurringTask:
        """Record a completion and advance the deadline."""
        task = await self._owned_task(task_id, owner_id)
        now = self._clock()
        # Completion is ``now``, so rolling and fixed tasks both advance from it.
        next_deadline = compute_next_deadline(
            task.deadline_mode,
            task.recurrence_rule,
            task.custom_interval_hours,
            now,
            now,
            tz=self._tz,
        )
        await self._repository.record_completion(task_id, now, next_deadline)
        await self._repository.increment_owner_counter(
            owner_id, OwnerCounter.COMPLETED_TESTNETS, now
        )
        updated = await self._repository.get_task(task_id)
        assert updated is not None
        return updated

    async def update_schedule(
        self,
        task_id: str,
        owner_id: str,
        *,
        recurrence_rule: RecurrenceRule | str | None = None,
        deadline_mode: DeadlineMode | str | None = None,
        custom_interval_hours: Optional[int] = None,
        reminder_hours: Optional[int] = None,
    ) -> RecurringTask:
        """Change the recurrence policy and recompute the deadline when it changed."""
        task = await self._owned_task(task_id, owner_id)

        rule = task.recurrence_rule if recurrence_rule is None else recurrence_rule
        interval = (
            custom_interval_hours
            if custom_interval_hours is not None
            else task.custom_interval_hours
        )
        rule = validate_recurrence(rule, interval)
        mode = task.deadline_mode if deadline_mode is None else _coerce_mode(deadline_mode)

        fields: dict[str, object] = {}
        if reminder_hours is not None:
            fields["reminder_hours"] = validate_reminder_hours(reminder_hours)

        policy_changed = (
            rule is not task.recurrence_rule
            or mode is not task.deadline_mode
            or (rule is RecurrenceRule.CUSTOM and interval != task.custom_interval_hours)
        )
        now = self._clock()
        if policy_changed:
            fields.update(
                recurrence_rule=rule,
                deadline_mode=mode,
                custom_interval_hours=interval if rule is RecurrenceRule.CUSTOM else None,
                # Reconfiguration is measured from now, never from an old completion.
                next_deadline=compute_next_deadline(
                    mode, rule, interval, None, now, tz=self._tz
                ),
            )

        if fields:
            await self._repository.update_task(task_id, now, **fields)
        updated = await self._repository.get_task(task_id)
        assert updated is not None
        return updated

    async def pause_task(self, task_id: str, owner_id: str) -> RecurringTask:
        await self._owned_task(task_id, owner_id)
        await self._repository.update_task(
            task_id, self._clock(), status=TaskStatus.PAUSED
        )
        updated = await self._repository.get_task(task_id)
        assert updated is not None
        return updated

    async def resume_task(self, task_id: str, owner_id: str) -> RecurringTask:
        """Reactivate a paused or overdue task with a fresh deadline."""
        task = await self._owned_task(task_id, owner_id)
        now = self._clock()
        next_deadline = compute_next_deadline(
            task.deadline_mode,
            task.recurrence_rule,
            task.custom_interval_hours,
            None,
            now,
            tz=self._tz,
        )
        await self._repository.update_task(
            task_id, now, status=TaskStatus.ACTIVE, next_deadline=next_deadline
        )
        updated = await self._repository.get_task(task_id)
        assert updated is not None
        return updated

    async def delete_task(self, task_id: str, owner_id: str) -> bool:
        await self._owned_task(task_id, owner_id)
        deleted = await self._repository.delete_task(task_id)
        if deleted:
            await self._repository.increment_owner_counter(
                owner_id, OwnerCounter.TOTAL_TESTNETS, self._clock(), amount=-1
            )
        return deleted

    async def upcoming_deadlines(
        self, owner_id: str, hours: int = 24
    ) -> list[UpcomingDeadline]:
        """Active tasks due within the next ``hours``, soonest first."""
        if hours < 1:
            raise ValueError("hours must be at least 1")

        now = self._clock()
        active = [
            task
            for task in await self._repository.list_tasks_for_owner(owner_id)
            if task.is_active and task.next_deadline > now
        ]
        due = get_deadlines_in_range(active, now, now + timedelta(hours=hours))
        due.sort(key=lambda task: task.next_deadline)
        return [
            UpcomingDeadline(
                task=task,
                time_remaining=format_time_remaining(task.next_deadline, now),
                urgency=get_urgency_level(task.next_deadline, now),
            )
            for task in due
        ]

    async def get_stats(self, owner_id: str) -> TaskStats:
        """Summarize an owner's tasks by status, network and category."""
        stats = TaskStats()
        for task in await self._repository.list_tasks_for_owner(owner_id):
            stats.total += 1
            if task.status is TaskStatus.ACTIVE:
                stats.active += 1
            elif task.status is TaskStatus.COMPLETED:
                stats.completed += 1
            elif task.status is TaskStatus.OVERDUE:
                stats.overdue += 1
            elif task.status is TaskStatus.PAUSED:
                stats.paused += 1
            stats.total_completions += task.completion_count
            stats.total_missed += task.missed_count
            network = task.network or "unknown"
            stats.networks[network] = stats.networks.get(network, 0) + 1
            stats.categories[task.category] = stats.categories.get(task.category, 0) + 1
        return stats


__all__ = ["TestnetService"]
