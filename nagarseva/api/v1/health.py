"""Health check endpoints for NagarSeva API v1.

Liveness and readiness checks for Cloud Run.  Readiness verifies that the
complaint store answers a query and reports the state of the mapping cache
and background workers.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness check.  Does *not* check downstream dependencies."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    checks: dict[str, str] = {}
    all_ok = True

    # -- Complaint store ---------------------------------------------------
    store = getattr(request.app.state, "complaint_store", None)
    collection = getattr(request.app.state, "complaints_collection", "complaints")
    if store is not None:
        try:
            await store.query(collection, limit=1)
            checks["complaint_store"] = "ok"
        except Exception as exc:
            checks["complaint_store"] = f"error: {exc!s}"
            all_ok = False
    else:
        checks["complaint_store"] = "not_configured"
        all_ok = False

    # -- Mapping cache -----------------------------------------------------
    cache = getattr(request.app.state, "mapping_cache", None)
    checks["mapping_cache"] = "ok" if cache is not None else "not_configured"

    # -- Background workers ------------------------------------------------
    monitor = getattr(request.app.state, "sla_monitor", None)
    if monitor is None:
        checks["sla_monitor"] = "disabled"
    else:
        checks["sla_monitor"] = "running" if monitor.is_running else "stopped"

    processor = getattr(request.app.state, "processor", None)
    if processor is None:
        checks["complaint_processor"] = "disabled"
    else:
        checks["complaint_processor"] = "running" if processor.is_running else "stopped"

    status = "ready" if all_ok else "degraded"
    logger.info("health.readiness_check", status=status, checks=checks)
    return ReadinessResponse(status=status, checks=checks)
