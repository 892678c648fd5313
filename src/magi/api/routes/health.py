"""
Health and readiness endpoints.

  GET /health       -- Liveness probe plus the active admission policy
  GET /health/ready -- Readiness probe (completion client configured)

Neither endpoint is rate limited or origin checked.
"""

import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ... import __version__
from ...config import GatewaySettings
from ..models.responses import HealthResponse, ReadinessResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def liveness(request: Request) -> HealthResponse:
    """Liveness probe -- returns 200 if the process is running."""
    settings: GatewaySettings = request.app.state.settings
    start_time = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        version=__version__,
        uptime_seconds=round(time.time() - start_time, 1),
        model=getattr(request.app.state.completion_client, "model", None),
        rate_limit=settings.rate_limit,
        rate_window_seconds=settings.rate_window_seconds,
        rate_limit_fail_open=settings.rate_limit_fail_open,
        allow_missing_origin=settings.allow_missing_origin,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness(request: Request):
    """Readiness probe -- 503 until the completion client can make calls."""
    client = request.app.state.completion_client
    checks = {"completion_client_configured": bool(getattr(client, "configured", True))}
    ready = all(checks.values())
    body = ReadinessResponse(ready=ready, checks=checks)
    if not ready:
        return JSONResponse(body.model_dump(), status_code=503)
    return body
