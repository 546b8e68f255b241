from __future__ import annotations

from datetime import timedelta
from functools import partial

from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import BASE_TIME, FakeClock, RecordingDispatcher
from testnet_tracker.app import create_app
from testnet_tracker.deadlines import DeadlineMode, RecurrenceRule
from testnet_tracker.routers.scheduler import router as scheduler_router


def _app(settings, **overrides):
    settings = settings.model_copy(update=overrides)
    return create_app(
        settings,
        clock=FakeClock(),
        dispatchers=[RecordingDispatcher("email"), RecordingDispatcher("push")],
        configure_logging=False,
    )


def test_health_reports_scheduler_state(settings):
    app = _app(settings)

    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "scheduler_running": False, "timezone": "UTC"}


def test_jobs_listed_when_scheduler_enabled(settings):
    app = _app(settings, scheduler_enabled=True)

    with TestClient(app) as client:
        assert client.get("/health").json()["scheduler_running"] is True
        response = client.get("/api/scheduler/jobs")

    assert response.status_code == 200
    ids = {job["id"] for job in response.json()}
    assert ids == {"deadline_reminders", "overdue", "daily_summary", "weekly_summary"}


def test_jobs_empty_when_scheduler_disabled(settings):
    with TestClient(_app(settings)) as client:
        response = client.get("/api/scheduler/jobs")

    assert response.status_code == 200
    assert response.json() == []


def test_manual_sweep_returns_report(settings):
    app = _app(settings)

    with TestClient(app) as client:
        create = partial(
            app.state.task_repository.create_task,
            owner_id="owner-1",
            name="Monad",
            recurrence_rule=RecurrenceRule.DAILY,
            deadline_mode=DeadlineMode.FIXED,
            next_deadline=BASE_TIME - timedelta(hours=30),
            created_at=BASE_TIME - timedelta(days=2),
        )
        client.portal.call(create)

        response = client.post("/api/scheduler/sweeps/overdue")

    assert response.status_code == 200
    body = response.json()
    assert body["sweep"] == "overdue"
    assert (body["examined"], body["emitted"], body["escalated"]) == (1, 1, 1)


def test_unknown_sweep_is_404(settings):
    with TestClient(_app(settings)) as client:
        response = client.post("/api/scheduler/sweeps/hourly")

    assert response.status_code == 404


def test_missing_scheduler_is_503():
    app = FastAPI()
    app.include_router(scheduler_router)

    with TestClient(app) as client:
        response = client.get("/api/scheduler/jobs")

    assert response.status_code == 503
