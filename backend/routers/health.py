"""
Run Ingest Engine - Health Check Router

Provides health check endpoints for monitoring and load balancers.

Key endpoints:
- GET /health  - Liveness probe: returns 200 if process is up
- GET /readyz  - Readiness probe: returns 200 only if the store is reachable
- GET /metrics - Process-local counters and uptime
"""

import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..container import ServiceContainer, get_container
from ..db import check_db_ready, get_pool_health
from ..stores.postgres import PostgresStore

READINESS_TIMEOUT = 2.0

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class LivenessResponse(BaseModel):
    """Liveness probe response - indicates process is alive."""

    status: str
    timestamp: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness probe response - indicates service is ready to accept traffic."""

    ready: bool
    status: str
    timestamp: str
    store: str
    detail: str | None = None


class MetricsResponse(BaseModel):
    uptime_seconds: int
    counters: dict[str, int]
    timestamp: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=LivenessResponse)
async def liveness() -> LivenessResponse:
    """
    Liveness probe. No I/O; only proves the event loop is serving requests.
    """
    return LivenessResponse(status="ok", timestamp=_now_iso(), version=__version__)


@router.get(
    "/readyz",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse, "description": "Store unreachable"}},
)
async def readiness(container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """
    Readiness probe.

    Returns 200 if the store answers within READINESS_TIMEOUT, 503 otherwise.
    """
    backend = container.settings.STORE_BACKEND
    store = container.store

    if store is None:
        health = get_pool_health()
        ready, detail = False, health.last_error or "store not initialized"
    elif isinstance(store, PostgresStore):
        ready, detail = await check_db_ready(timeout=READINESS_TIMEOUT)
    else:
        try:
            ready = await asyncio.wait_for(store.ping(), timeout=READINESS_TIMEOUT)
            detail = "ok" if ready else "ping failed"
        except asyncio.TimeoutError:
            ready, detail = False, f"timeout ({READINESS_TIMEOUT}s)"

    if not ready:
        logger.warning(f"Readiness check failed: store={backend} detail={detail}")

    body = ReadinessResponse(
        ready=ready,
        status="ready" if ready else "not_ready",
        timestamp=_now_iso(),
        store=backend,
        detail=detail,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(),
    )


@router.get("/metrics", response_model=MetricsResponse)
async def metrics(container: ServiceContainer = Depends(get_container)) -> MetricsResponse:
    """Counters since process start. Each worker process reports its own."""
    snapshot = container.metrics.snapshot()
    return MetricsResponse(
        uptime_seconds=snapshot["uptime_seconds"],
        counters=snapshot["counters"],
        timestamp=_now_iso(),
    )
