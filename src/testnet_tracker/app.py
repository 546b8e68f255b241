"""Application factory for the tracker service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv
from fastapi import FastAPI

from .config import PROJECT_ROOT, Settings, get_settings
from .logging_handlers import DateStampedFileHandler, cleanup_old_logs
from .logging_settings import COMPONENT_LOGGERS, parse_logging_settings
from .notifications.repository import NotificationRepository
from .routers.scheduler import router as scheduler_router
from .schemas.preferences import NotificationPreferences
from .services.dispatchers import (
    LoggingDispatcher,
    NotificationDispatcher,
    WebhookDispatcher,
)
from .services.notifications import NotificationService
from .services.reminder_scheduler import ReminderScheduler
from .testnets.repository import TaskRepository
from .utils.datetime_utils import Clock, resolve_timezone, utc_now

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def _configure_logging(settings: Settings) -> list[Path]:
    """Configure the root logger from LOG_LEVEL/LOG_FILE and the settings file.

    Returns the component log directories so stale files can be pruned.
    """
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT)

    file_settings = parse_logging_settings(
        _resolve_under(PROJECT_ROOT, settings.logging_settings_path)
    )
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if file_settings.terminal_level is not None:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.setLevel(file_settings.terminal_level)
        handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)
    logging.getLogger("testnet_tracker").setLevel(log_level)

    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(max(log_level, logging.WARNING))
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    log_root = _resolve_under(PROJECT_ROOT, settings.log_dir)
    tz = resolve_timezone(settings.scheduler_timezone)
    # Disabled components still get their old files pruned.
    component_dirs = [log_root / component for component in COMPONENT_LOGGERS]
    for component, logger_name, level in file_settings.enabled_components():
        handler = DateStampedFileHandler(
            log_root / component, prefix=component, tz=tz, delay=True
        )
        handler.setFormatter(formatter)
        handler.setLevel(level)
        logging.getLogger(logger_name).addHandler(handler)

    cleanup_old_logs(
        component_dirs,
        file_settings.retention_hours,
        logger=logging.getLogger(__name__),
    )
    return component_dirs


def _build_dispatchers(settings: Settings) -> list[NotificationDispatcher]:
    dispatchers: list[NotificationDispatcher] = []
    if settings.email_webhook_url is not None:
        dispatchers.append(
            WebhookDispatcher(
                "email", str(settings.email_webhook_url), timeout=settings.webhook_timeout
            )
        )
    else:
        dispatchers.append(LoggingDispatcher("email"))
    if settings.push_webhook_url is not None:
        dispatchers.append(
            WebhookDispatcher(
                "push", str(settings.push_webhook_url), timeout=settings.webhook_timeout
            )
        )
    else:
        dispatchers.append(LoggingDispatcher("push"))
    return dispatchers


def create_app(
    settings: Settings | None = None,
    *,
    clock: Clock = utc_now,
    dispatchers: Sequence[NotificationDispatcher] | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    if configure_logging:
        _configure_logging(settings)

    database_path = _resolve_under(PROJECT_ROOT, settings.database_path)
    tz = resolve_timezone(settings.scheduler_timezone)

    task_repository = TaskRepository(database_path)
    notification_repository = NotificationRepository(database_path)
    active_dispatchers = (
        list(dispatchers) if dispatchers is not None else _build_dispatchers(settings)
    )
    notification_service = NotificationService(
        notification_repository,
        active_dispatchers,
        clock=clock,
        tz=tz,
        default_preferences=NotificationPreferences(
            reminder_hours=settings.default_reminder_hours
        ),
    )
    reminder_scheduler = ReminderScheduler(
        task_repository, notification_service, settings, clock=clock
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await task_repository.initialize()
        await notification_repository.initialize()
        if settings.scheduler_enabled:
            reminder_scheduler.start()
        else:
            logging.getLogger(__name__).info("Reminder scheduler disabled by configuration")
        try:
            yield
        finally:
            await reminder_scheduler.shutdown()
            for dispatcher in active_dispatchers:
                if isinstance(dispatcher, WebhookDispatcher):
                    await dispatcher.aclose()
            await notification_repository.close()
            await task_repository.close()

    app = FastAPI(
        title="Testnet Tracker Scheduler",
        version="0.1.0",
        description="Deadline reminders and overdue tracking for recurring testnet tasks.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.task_repository = task_repository
    app.state.notification_service = notification_service
    app.state.reminder_scheduler = reminder_scheduler

    app.include_router(scheduler_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | bool]:
        return {
            "status": "ok",
            "scheduler_running": reminder_scheduler.running,
            "timezone": settings.scheduler_timezone,
        }

    return app


__all__ = ["create_app"]
