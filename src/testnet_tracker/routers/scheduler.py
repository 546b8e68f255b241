"""Operational endpoints for the reminder scheduler."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ..services.reminder_scheduler import SWEEP_NAMES, ReminderScheduler

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


class JobResponse(BaseModel):
    """A registered sweep job."""

    id: str
    name: str
    trigger: str
    next_run_time: str | None = None


class SweepReportResponse(BaseModel):
    """Counters from a manually triggered sweep."""

    sweep: str
    started_at: str
    finished_at: str | None = None
    examined: int
    emitted: int
    skipped: int
    failed: int
    escalated: int


def get_scheduler(request: Request) -> ReminderScheduler:
    scheduler = getattr(request.app.state, "reminder_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Reminder scheduler not available")
    return scheduler


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(request: Request) -> list[dict[str, Any]]:
    """List the scheduled sweeps and when they next run."""
    return get_scheduler(request).jobs()


@router.post("/sweeps/{name}", response_model=SweepReportResponse)
async def run_sweep(request: Request, name: str) -> dict[str, Any]:
    """Run one sweep immediately."""
    scheduler = get_scheduler(request)
    if name not in SWEEP_NAMES:
        raise HTTPException(status_code=404, detail=f"Unknown sweep '{name}'")

    report = await scheduler.run_sweep(name)
    if report is None:
        raise HTTPException(status_code=500, detail=f"Sweep '{name}' failed")
    return report.to_dict()
