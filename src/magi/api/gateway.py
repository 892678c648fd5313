"""
API Gateway -- FastAPI application factory.

Creates the FastAPI app for the admission-controlled completion endpoint.
This is the entrypoint for uvicorn:

    uvicorn magi.api.gateway:create_app --factory --host 0.0.0.0 --port 8000

Or via the CLI:

    magi serve --reload

Security:
  - Origin allow-list enforced per request (403), CORS echoed only for
    allowed origins
  - Payload validated at the boundary (400 with itemized details)
  - Sliding-window rate limit per caller IP (429), fails open on store errors
  - Uniform {"error": ...} bodies; internals only in the server log
"""

import logging
import time

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import CompletionSettings, GatewaySettings
from ..llm import create_client
from .errors import GatewayError, gateway_error_handler, http_error_handler, unhandled_error_handler
from .middleware.origin import OriginPolicy, cors_middleware
from .middleware.rate_limit import SlidingWindowRateLimiter
from .routes import analyze, health

logger = logging.getLogger(__name__)


def create_app(
    settings: GatewaySettings | None = None,
    completion_client=None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """
    Application factory -- creates and configures the FastAPI app.

    Args:
        settings: Admission policy (GatewaySettings.from_env() if None).
        completion_client: Object with async complete(messages, model, reasoning_effort)
            (direct upstream client from the environment if None).
        rate_limiter: Pre-built limiter (in-memory, from settings, if None).
    """
    settings = settings or GatewaySettings.from_env()

    application = FastAPI(
        title="MAGI Gateway",
        description="Admission-controlled gateway in front of the completion service",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if completion_client is None:
        completion_client = create_client(CompletionSettings.from_env())
    if rate_limiter is None:
        rate_limiter = SlidingWindowRateLimiter(
            limit=settings.rate_limit,
            window_seconds=settings.rate_window_seconds,
            fail_open=settings.rate_limit_fail_open,
        )

    application.state.settings = settings
    application.state.origin_policy = OriginPolicy(settings)
    application.state.rate_limiter = rate_limiter
    application.state.completion_client = completion_client
    application.state.start_time = time.time()

    application.middleware("http")(cors_middleware)
    application.add_exception_handler(GatewayError, gateway_error_handler)
    application.add_exception_handler(StarletteHTTPException, http_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(health.router, tags=["Health"])
    application.include_router(analyze.router, tags=["Analyze"])

    if settings.allow_missing_origin:
        logger.info("[Gateway] Requests without an Origin header are admitted")
    if settings.rate_limit_fail_open:
        logger.info("[Gateway] Rate limiter fails open on store errors")
    logger.info(
        f"[Gateway] API gateway initialized "
        f"(limit={settings.rate_limit}/{settings.rate_window_seconds:.0f}s)"
    )
    return application
