#!/usr/bin/env python3
"""Run one reminder scheduler sweep against the configured database and exit.

Usage:
    python scripts/run_sweep.py overdue
    python scripts/run_sweep.py deadline_reminders --database data/tracker.db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add src to path for imports
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
SRC_DIR = PROJECT_ROOT / "src"
sys.path.insert(0, str(SRC_DIR))

from testnet_tracker.config import get_settings
from testnet_tracker.notifications.repository import NotificationRepository
from testnet_tracker.schemas.preferences import NotificationPreferences
from testnet_tracker.services.dispatchers import LoggingDispatcher
from testnet_tracker.services.notifications import NotificationService
from testnet_tracker.services.reminder_scheduler import SWEEP_NAMES, ReminderScheduler
from testnet_tracker.testnets.repository import TaskRepository
from testnet_tracker.utils.datetime_utils import resolve_timezone


async def run(sweep: str, database: Path | None) -> int:
    settings = get_settings()
    database_path = database or settings.database_path
    if not database_path.is_absolute():
        database_path = PROJECT_ROOT / database_path

    tasks = TaskRepository(database_path)
    notifications = NotificationRepository(database_path)
    await tasks.initialize()
    await notifications.initialize()
    try:
        service = NotificationService(
            notifications,
            [LoggingDispatcher("email"), LoggingDispatcher("push")],
            tz=resolve_timezone(settings.scheduler_timezone),
            default_preferences=NotificationPreferences(
                reminder_hours=settings.default_reminder_hours
            ),
        )
        scheduler = ReminderScheduler(tasks, service, settings)
        report = await scheduler.run_sweep(sweep)
    finally:
        await notifications.close()
        await tasks.close()

    if report is None:
        print(f"Sweep {sweep} failed; see log output above.", file=sys.stderr)
        return 1
    print(json.dumps(report.to_dict(), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("sweep", choices=SWEEP_NAMES)
    parser.add_argument("--database", type=Path, default=None)
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    return asyncio.run(run(args.sweep, args.database))


if __name__ == "__main__":
    sys.exit(main())
