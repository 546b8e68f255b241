"""Per-component log levels and retention read from ``logging_settings.conf``.

The file is a flat list of ``key = value`` lines::

    terminal = info
    scheduler = debug
    notifications = off
    retention_hours = 168

``terminal`` controls the console handler. Every other level key names a
component from ``COMPONENT_LOGGERS``; each enabled component gets its own
date-stamped log directory.
"""

from __future__ import annotations

import configparser
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping

logger = logging.getLogger(__name__)

COMPONENT_LOGGERS: dict[str, str] = {
    "scheduler": "testnet_tracker.services.reminder_scheduler",
    "notifications": "testnet_tracker.services.notifications",
}

TERMINAL_KEY = "terminal"
RETENTION_KEY = "retention_hours"
DEFAULT_LEVEL = logging.INFO
DEFAULT_RETENTION_HOURS = 168
# Sweeps log once per tick; more than 90 days of that is never useful.
MAX_RETENTION_HOURS = 24 * 90

_SECTION = "logging"


@dataclass(frozen=True)
class LoggingSettings:
    terminal_level: int | None = DEFAULT_LEVEL
    component_levels: Mapping[str, int | None] = field(default_factory=dict)
    retention_hours: int = DEFAULT_RETENTION_HOURS

    def level_for(self, component: str) -> int | None:
        return self.component_levels.get(component, DEFAULT_LEVEL)

    def enabled_components(
        self, components: Mapping[str, str] = COMPONENT_LOGGERS
    ) -> Iterator[tuple[str, str, int]]:
        """Yield ``(component, logger_name, level)`` for components not switched off."""
        for component, logger_name in components.items():
            level = self.level_for(component)
            if level is not None:
                yield component, logger_name, level


def _parse_level(key: str, value: str | None) -> int | None:
    name = (value or "").strip().upper()
    if name == "OFF":
        return None
    level = logging.getLevelNamesMapping().get(name)
    if level is None:
        logger.warning("Unknown log level %r for %s; using INFO", value, key)
        return DEFAULT_LEVEL
    return level


def _parse_retention(value: str | None) -> int:
    try:
        hours = int((value or "").strip())
    except ValueError:
        logger.warning("Invalid %s %r; using %d", RETENTION_KEY, value, DEFAULT_RETENTION_HOURS)
        return DEFAULT_RETENTION_HOURS
    return min(max(hours, 0), MAX_RETENTION_HOURS)


def parse_logging_settings(
    path: Path, components: Mapping[str, str] = COMPONENT_LOGGERS
) -> LoggingSettings:
    """Read ``path``; a missing file yields INFO everywhere and the default retention."""

    parser = configparser.ConfigParser(
        allow_no_value=True, strict=False, interpolation=None
    )
    if path.exists():
        # The file has no section headers, so supply one.
        parser.read_string(f"[{_SECTION}]\n" + path.read_text(encoding="utf-8"))
    else:
        parser.add_section(_SECTION)
    values = parser[_SECTION]

    component_levels: dict[str, int | None] = {}
    for component in components:
        if component in values:
            component_levels[component] = _parse_level(component, values[component])
        else:
            component_levels[component] = DEFAULT_LEVEL

    for key in values:
        if key not in components and key not in (TERMINAL_KEY, RETENTION_KEY):
            logger.debug("Ignoring unknown logging setting %r", key)

    terminal_level = (
        _parse_level(TERMINAL_KEY, values[TERMINAL_KEY])
        if TERMINAL_KEY in values
        else DEFAULT_LEVEL
    )
    retention_hours = (
        _parse_retention(values[RETENTION_KEY])
        if RETENTION_KEY in values
        else DEFAULT_RETENTION_HOURS
    )

    return LoggingSettings(
        terminal_level=terminal_level,
        component_levels=component_levels,
        retention_hours=retention_hours,
    )


__all__ = [
    "COMPONENT_LOGGERS",
    "LoggingSettings",
    "parse_logging_settings",
]
