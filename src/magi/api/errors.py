"""
Gateway error taxonomy.

Every failure at the /analyze boundary is one of these exceptions. A single
exception handler renders them as

    {"error": "<generic message>"[, "details": [...]]}

with the status code and any extra headers (rate-limit metadata) attached.
Messages are fixed strings; upstream error text and stack traces stay in
the server log.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        details: list[str] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message or self.message
        self.details = details
        self.headers = dict(headers or {})
        super().__init__(self.message)

    def to_body(self) -> dict:
        body: dict = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class RequestValidationFailed(GatewayError):
    status_code = 400
    message = "Validation failed"


class OriginNotAllowed(GatewayError):
    status_code = 403
    message = "Origin not allowed"


class MethodNotAllowed(GatewayError):
    status_code = 405
    message = "Method not allowed"


class RateLimited(GatewayError):
    status_code = 429
    message = "Too many requests"


class ServerConfigError(GatewayError):
    status_code = 500
    message = "Server configuration error: API Key missing"


class UpstreamInvalid(GatewayError):
    status_code = 502
    message = "Invalid response from AI"


class RateLimiterUnavailable(GatewayError):
    status_code = 503
    message = "Rate limiter unavailable"


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    return JSONResponse(exc.to_body(), status_code=exc.status_code, headers=exc.headers)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework errors (404, ...) with the same {"error": ...} shape."""
    return JSONResponse(
        {"error": str(exc.detail)},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"[Gateway] Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse({"error": GatewayError.message}, status_code=500)
