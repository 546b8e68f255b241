import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from testnet_tracker.config import Settings  # noqa: E402
from testnet_tracker.notifications.repository import NotificationRepository  # noqa: E402
from testnet_tracker.services.notifications import NotificationService  # noqa: E402
from testnet_tracker.testnets.repository import TaskRepository  # noqa: E402

BASE_TIME = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Mutable clock handed to services in place of the system time."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatcher:
    """Dispatcher that remembers what it was asked to deliver."""

    def __init__(self, channel: str, *, fail: bool = False):
        self.channel = channel
        self.fail = fail
        self.delivered = []

    async def dispatch(self, notification) -> None:
        if self.fail:
            raise RuntimeError(f"{self.channel} relay down")
        self.delivered.append(notification)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_path=tmp_path / "tracker.db",
        scheduler_enabled=False,
        scheduler_timezone="UTC",
        logging_settings_path=tmp_path / "logging_settings.conf",
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
async def task_repository(tmp_path):
    repo = TaskRepository(tmp_path / "tracker.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


@pytest.fixture
async def notification_repository(tmp_path):
    repo = NotificationRepository(tmp_path / "tracker.db")
    await repo.initialize()
    try:
        yield repo
    finally:
        await repo.close()


@pytest.fixture
def dispatchers() -> list[RecordingDispatcher]:
    return [RecordingDispatcher("email"), RecordingDispatcher("push")]


@pytest.fixture
def notification_service(notification_repository, dispatchers, clock) -> NotificationService:
    return NotificationService(notification_repository, dispatchers, clock=clock)
