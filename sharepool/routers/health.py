"""Liveness and scheduler status routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.orm import Session

from sharepool.web.dependencies import get_db_session

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request, session: Session = Depends(get_db_session)) -> dict[str, object]:
    session.execute(text("SELECT 1"))
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "scheduler_running": bool(scheduler is not None and scheduler.is_running),
        "jobs": scheduler.scheduled_jobs() if scheduler is not None else [],
    }
