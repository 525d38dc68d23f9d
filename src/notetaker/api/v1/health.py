"""Liveness and readiness probes.

/health has no dependencies. /health/ready pings the database and reports
whether the background dispatch/poll loops are alive.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.notetaker.config import get_settings
from src.notetaker.core.database import ping_database

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """503 with ``status: degraded`` when the database cannot be reached."""
    checks: dict = {}
    try:
        await ping_database()
        checks["database"] = "ok"
    except Exception as exc:
        logger.warning("health.database_unreachable", error=str(exc))
        checks["database"] = "error"
        checks["database_error"] = str(exc)

    loops = getattr(request.app.state, "scheduler_tasks", None) or []
    checks["scheduler"] = "running" if any(not t.done() for t in loops) else "stopped"

    ready = checks["database"] == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
