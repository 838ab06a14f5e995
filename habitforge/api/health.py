"""Liveness and readiness probes."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from habitforge.api.deps import HabitEngine, get_habit_engine
from habitforge.core.database import check_connection, get_engine

logger = logging.getLogger("habitforge")

router = APIRouter(tags=["health"])

REQUIRED_TABLES = [
    "users",
    "categories",
    "habits",
    "streaks",
    "habit_tasks",
    "experience_transactions",
    "user_category_experience",
]


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(engine: HabitEngine = Depends(get_habit_engine)):
    """Readiness: store reachable and, for SQL, required tables present."""
    pending = len(engine.completion.pending)
    if engine.backend != "sql":
        return {"status": "ok", "backend": engine.backend, "pending_awards": pending}

    if not check_connection():
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    inspector = inspect(get_engine())
    missing = [t for t in REQUIRED_TABLES if not inspector.has_table(t)]
    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok", "backend": engine.backend, "pending_awards": pending}
