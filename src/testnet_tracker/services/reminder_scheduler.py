"""Periodic deadline reminder, overdue and summary sweeps."""

from __future__ import annotations

import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import Settings
from ..deadlines import (
    UrgencyLevel,
    calculate_reminder_time,
    format_time_remaining,
    get_urgency_level,
    hours_overdue,
    hours_until,
)
from ..notifications.models import (
    Notification,
    NotificationDraft,
    NotificationKind,
    NotificationPriority,
)
from ..testnets.models import OwnerCounter, RecurringTask, TaskStatus
from ..testnets.repository import TaskRepository
from ..utils.datetime_utils import Clock, resolve_timezone, utc_now
from .notifications import NotificationService

logger = logging.getLogger(__name__)

REMINDER_SWEEP = "deadline_reminders"
OVERDUE_SWEEP = "overdue"
DAILY_SUMMARY = "daily_summary"
WEEKLY_SUMMARY = "weekly_summary"

SWEEP_NAMES = (REMINDER_SWEEP, OVERDUE_SWEEP, DAILY_SUMMARY, WEEKLY_SUMMARY)

# Overlapping runs of one job are allowed; a slow sweep must not block the next tick.
_JOB_MAX_INSTANCES = 3
_JOB_MISFIRE_GRACE_SECONDS = 300

_T = TypeVar("_T")


@dataclass(slots=True)
class SweepReport:
    """Outcome counters for one sweep run."""

    sweep: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    examined: int = 0
    emitted: int = 0
    skipped: int = 0
    failed: int = 0
    escalated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sweep": self.sweep,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "examined": self.examined,
            "emitted": self.emitted,
            "skipped": self.skipped,
            "failed": self.failed,
            "escalated": self.escalated,
        }


def _describe(task: RecurringTask) -> str:
    if task.network:
        return f'"{task.name}" on {task.network}'
    return f'"{task.name}"'


class ReminderScheduler:
    """Drive the reminder, overdue and summary sweeps on fixed cadences.

    Each sweep evaluates its tasks (or owners) concurrently and isolates
    failures per unit. De-duplication relies only on the notification ledger
    lookback, so overlapping runs may emit a duplicate; delivery is
    at-least-once.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        notifications: NotificationService,
        settings: Settings,
        *,
        clock: Clock = utc_now,
    ):
        self._tasks = tasks
        self._notifications = notifications
        self._settings = settings
        self._clock = clock
        self._tz = resolve_timezone(settings.scheduler_timezone)
        self._scheduler: AsyncIOScheduler | None = None
        self._sweeps: dict[str, Callable[[], Awaitable[SweepReport]]] = {
            REMINDER_SWEEP: self.check_deadline_reminders,
            OVERDUE_SWEEP: self.check_overdue_tasks,
            DAILY_SUMMARY: self.send_daily_summary,
            WEEKLY_SUMMARY: self.send_weekly_summary,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register the four sweep jobs and start the cron scheduler."""
        if self.running:
            return

        scheduler = AsyncIOScheduler(timezone=self._tz)
        triggers = {
            REMINDER_SWEEP: IntervalTrigger(
                minutes=self._settings.reminder_sweep_minutes, timezone=self._tz
            ),
            OVERDUE_SWEEP: CronTrigger(minute=0, timezone=self._tz),
            DAILY_SUMMARY: CronTrigger(
                hour=self._settings.daily_summary_hour, minute=0, timezone=self._tz
            ),
            WEEKLY_SUMMARY: CronTrigger(
                day_of_week=self._settings.weekly_summary_day,
                hour=self._settings.weekly_summary_hour,
                minute=0,
                timezone=self._tz,
            ),
        }
        for name, trigger in triggers.items():
            scheduler.add_job(
                self.run_sweep,
                trigger,
                args=[name],
                id=name,
                name=name.replace("_", " "),
                max_instances=_JOB_MAX_INSTANCES,
                coalesce=True,
                misfire_grace_time=_JOB_MISFIRE_GRACE_SECONDS,
                replace_existing=True,
            )

        scheduler.start()
        self._scheduler = scheduler
        logger.info("Reminder scheduler started (%s)", self._settings.scheduler_timezone)

    async def shutdown(self) -> None:
        """Stop scheduling new sweeps; in-flight sweeps are not cancelled."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Reminder scheduler stopped")

    def jobs(self) -> list[dict[str, Any]]:
        """Describe the registered jobs and their next run times."""
        if self._scheduler is None:
            return []
        described = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            described.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "trigger": str(job.trigger),
                    "next_run_time": next_run.isoformat() if next_run else None,
                }
            )
        return described

    async def run_sweep(self, name: str) -> SweepReport | None:
        """Run one sweep by name, logging instead of raising on failure.

        Raises:
            KeyError: ``name`` is not a known sweep.
        """
        sweep = self._sweeps[name]
        try:
            report = await sweep()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sweep %s failed; retrying at the next tick", name)
            return None

        logger.info(
            "Sweep %s: examined=%d emitted=%d skipped=%d failed=%d escalated=%d",
            report.sweep,
            report.examined,
            report.emitted,
            report.skipped,
            report.failed,
            report.escalated,
        )
        return report

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    async def check_deadline_reminders(
        self, now: datetime | None = None
    ) -> SweepReport:
        """Remind owners of active tasks whose reminder time has arrived."""
        reference = now or self._clock()
        report = SweepReport(sweep=REMINDER_SWEEP, started_at=reference)

        tasks = await self._tasks.list_active_due_before(reference + timedelta(hours=24))
        await self._fan_out(
            report,
            tasks,
            lambda task: self._remind(task, reference),
            lambda task: f"task {task.id}",
        )
        report.finished_at = self._clock()
        return report

    async def _remind(self, task: RecurringTask, now: datetime) -> bool:
        deadline = task.next_deadline
        if deadline <= now:
            return False

        preferences = await self._notifications.get_preferences(task.owner_id)
        if not preferences.deadline_reminders:
            return False

        lead_hours = task.reminder_hours or preferences.reminder_hours
        reminder_at = calculate_reminder_time(deadline, lead_hours)
        if not reminder_at <= now < deadline:
            return False

        if await self._notifications.has_recent(
            task.owner_id,
            task.id,
            NotificationKind.REMINDER,
            self._settings.dedup_window,
            now=now,
        ):
            return False

        urgency = get_urgency_level(deadline, now)
        hours_remaining = math.ceil(hours_until(deadline, now))
        priority = (
            NotificationPriority.HIGH
            if urgency is UrgencyLevel.CRITICAL
            else NotificationPriority.MEDIUM
        )
        draft = NotificationDraft(
            kind=NotificationKind.REMINDER,
            title=f"Testnet Deadline Reminder: {task.name}",
            message=(
                f"Your testnet {_describe(task)} has a deadline in "
                f"{hours_remaining} hour(s)."
            ),
            priority=priority,
            task_id=task.id,
            metadata={
                "task_name": task.name,
                "network": task.network,
                "deadline": deadline.isoformat(),
                "urgency": urgency.value,
                "hours_remaining": hours_remaining,
                "time_remaining": format_time_remaining(deadline, now),
                "lead_hours": lead_hours,
            },
        )
        await self._notifications.emit(task.owner_id, draft, now=now)
        return True

    async def check_overdue_tasks(self, now: datetime | None = None) -> SweepReport:
        """Notify owners of overdue active tasks and escalate long-missed ones."""
        reference = now or self._clock()
        report = SweepReport(sweep=OVERDUE_SWEEP, started_at=reference)

        tasks = await self._tasks.list_active_overdue(reference)
        await self._fan_out(
            report,
            tasks,
            lambda task: self._flag_overdue(task, reference, report),
            lambda task: f"task {task.id}",
        )
        report.finished_at = self._clock()
        return report

    async def _flag_overdue(
        self, task: RecurringTask, now: datetime, report: SweepReport
    ) -> bool:
        if await self._notifications.has_recent(
            task.owner_id,
            task.id,
            NotificationKind.OVERDUE,
            self._settings.dedup_window,
            now=now,
        ):
            return False

        overdue_hours = hours_overdue(task.next_deadline, now)
        draft = NotificationDraft(
            kind=NotificationKind.OVERDUE,
            title=f"Overdue: {task.name}",
            message=(
                f"Your testnet {_describe(task)} is {overdue_hours} hour(s) overdue. "
                "Don't forget to complete your participation!"
            ),
            priority=NotificationPriority.HIGH,
            task_id=task.id,
            metadata={
                "task_name": task.name,
                "network": task.network,
                "deadline": task.next_deadline.isoformat(),
                "hours_overdue": overdue_hours,
            },
        )
        await self._notifications.emit(task.owner_id, draft, now=now)

        if now - task.next_deadline > self._settings.overdue_escalation:
            if await self._tasks.mark_overdue(task.id, now):
                await self._tasks.increment_owner_counter(
                    task.owner_id, OwnerCounter.MISSED_DEADLINES, now
                )
                report.escalated += 1
                logger.info(
                    "Task %s marked overdue after %d hour(s)", task.id, overdue_hours
                )
        return True

    async def send_daily_summary(self, now: datetime | None = None) -> SweepReport:
        """Send each owner one summary of the deadlines in the next 24 hours."""
        reference = now or self._clock()
        report = SweepReport(sweep=DAILY_SUMMARY, started_at=reference)

        tasks = await self._tasks.list_active_due_between(
            reference, reference + timedelta(hours=24)
        )
        by_owner: dict[str, list[RecurringTask]] = defaultdict(list)
        for task in tasks:
            by_owner[task.owner_id].append(task)

        await self._fan_out(
            report,
            list(by_owner.items()),
            lambda entry: self._summarize_day(entry[0], entry[1], reference),
            lambda entry: f"owner {entry[0]}",
        )
        report.finished_at = self._clock()
        return report

    async def _summarize_day(
        self, owner_id: str, tasks: list[RecurringTask], now: datetime
    ) -> bool:
        preferences = await self._notifications.get_preferences(owner_id)
        if not preferences.type_enabled(NotificationKind.SYSTEM.value):
            return False

        names = ", ".join(task.name for task in tasks)
        draft = NotificationDraft(
            kind=NotificationKind.SYSTEM,
            title="Daily Testnet Summary",
            message=f"You have {len(tasks)} testnet deadline(s) today: {names}",
            priority=NotificationPriority.MEDIUM,
            metadata={
                "summary_type": "daily",
                "task_count": len(tasks),
                "tasks": [
                    {
                        "id": task.id,
                        "name": task.name,
                        "network": task.network,
                        "deadline": task.next_deadline.isoformat(),
                        "time_remaining": format_time_remaining(
                            task.next_deadline, now
                        ),
                    }
                    for task in tasks
                ],
            },
        )
        await self._notifications.emit(owner_id, draft, now=now)
        return True

    async def send_weekly_summary(self, now: datetime | None = None) -> SweepReport:
        """Send each owner with active tasks a summary of the trailing week."""
        reference = now or self._clock()
        report = SweepReport(sweep=WEEKLY_SUMMARY, started_at=reference)

        owner_ids = await self._tasks.list_owner_ids()
        await self._fan_out(
            report,
            owner_ids,
            lambda owner_id: self._summarize_week(owner_id, reference),
            lambda owner_id: f"owner {owner_id}",
        )
        report.finished_at = self._clock()
        return report

    async def _summarize_week(self, owner_id: str, now: datetime) -> bool:
        week_ago = now - timedelta(days=7)
        tasks = await self._tasks.list_tasks_for_owner(owner_id)

        total_active = sum(1 for task in tasks if task.status is TaskStatus.ACTIVE)
        if total_active == 0:
            return False

        preferences = await self._notifications.get_preferences(owner_id)
        if not preferences.type_enabled(NotificationKind.SYSTEM.value):
            return False

        completed = sum(
            1
            for task in tasks
            if task.last_completed_at is not None and task.last_completed_at >= week_ago
        )
        missed = sum(
            1
            for task in tasks
            if task.status is TaskStatus.OVERDUE and task.updated_at >= week_ago
        )

        draft = NotificationDraft(
            kind=NotificationKind.SYSTEM,
            title="Weekly Testnet Summary",
            message=(
                f"This week: {completed} completed, {missed} missed. "
                f"You have {total_active} active testnets."
            ),
            priority=NotificationPriority.LOW,
            metadata={
                "summary_type": "weekly",
                "completed_this_week": completed,
                "missed_this_week": missed,
                "total_active": total_active,
                "week_start": week_ago.isoformat(),
                "week_end": now.isoformat(),
            },
        )
        await self._notifications.emit(owner_id, draft, now=now)
        return True

    async def send_custom_notification(
        self, owner_id: str, draft: NotificationDraft
    ) -> Notification:
        """Emit a one-off notification immediately; errors propagate."""
        notification = await self._notifications.emit(owner_id, draft)
        logger.info("Custom notification sent to owner %s", owner_id)
        return notification

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _fan_out(
        self,
        report: SweepReport,
        items: Iterable[_T],
        evaluate: Callable[[_T], Awaitable[bool]],
        describe: Callable[[_T], str],
    ) -> None:
        units = list(items)
        report.examined = len(units)
        results = await asyncio.gather(
            *(evaluate(unit) for unit in units), return_exceptions=True
        )
        for unit, result in zip(units, results):
            if isinstance(result, Exception):
                report.failed += 1
                logger.error(
                    "Sweep %s failed for %s",
                    report.sweep,
                    describe(unit),
                    exc_info=result,
                )
            elif isinstance(result, BaseException):
                raise result
            elif result:
                report.emitted += 1
            else:
                report.skipped += 1


__all__ = [
    "ReminderScheduler",
    "SweepReport",
    "SWEEP_NAMES",
    "REMINDER_SWEEP",
    "OVERDUE_SWEEP",
    "DAILY_SUMMARY",
    "WEEKLY_SUMMARY",
]
