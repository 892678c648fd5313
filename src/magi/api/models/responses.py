"""
Pydantic response models -- what the gateway returns besides the passthrough.

A successful /analyze returns the upstream JSON object unchanged, so it has
no model here.
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Every non-2xx body: a machine-readable error plus optional details."""

    error: str
    details: list[str] | None = Field(None, description="Itemized validation problems")


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    uptime_seconds: float = 0.0
    model: str | None = Field(None, description="Default upstream model")
    rate_limit: int
    rate_window_seconds: float
    rate_limit_fail_open: bool
    allow_missing_origin: bool


class ReadinessResponse(BaseModel):
    ready: bool
    checks: dict[str, bool] = Field(default_factory=dict)
