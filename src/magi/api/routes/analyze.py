"""
Analyze API -- the admission-controlled front of the completion service.

  POST    /analyze  -- validated, rate-limited completion call
  OPTIONS /analyze  -- CORS preflight (204)
  other             -- 405

Admission order for POST:
  1. origin policy        -> 403
  2. payload validation   -> 400 with itemized details
  3. sliding-window limit -> 429 (X-RateLimit-* headers from here on)
  4. completion call      -> 200 passthrough | 502 | 500

Upstream failures never leak their text: 502 for non-2xx or unparseable
upstream content, 500 with a generic message for everything else.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from ...config import REASONING_EFFORTS, GatewaySettings
from ...llm.errors import CompletionConfigError, MalformedUpstreamResponse, UpstreamUnavailable
from ...security import collect_analyze_errors
from ..errors import (
    GatewayError,
    MethodNotAllowed,
    RateLimited,
    RequestValidationFailed,
    ServerConfigError,
    UpstreamInvalid,
)
from ..middleware.origin import check_origin, preflight_headers
from ..middleware.rate_limit import SlidingWindowRateLimiter, client_identity
from ..models.requests import AnalyzeRequest
from ..models.responses import ErrorResponse

logger = logging.getLogger(__name__)
router = APIRouter()

_ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 403, 405, 429, 500, 502)
}


async def _read_json(request: Request) -> object:
    raw = await request.body()
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise RequestValidationFailed(details=["Request body must be valid JSON"])


@router.post("/analyze", responses=_ERROR_RESPONSES)
async def analyze(
    request: Request,
    origin: str | None = Depends(check_origin),
) -> JSONResponse:
    """Forward one validated message list to the completion service."""
    settings: GatewaySettings = request.app.state.settings
    limiter: SlidingWindowRateLimiter = request.app.state.rate_limiter

    body = await _read_json(request)
    errors = collect_analyze_errors(
        body,
        allowed_models=settings.allowed_models,
        reasoning_efforts=REASONING_EFFORTS,
        max_messages=settings.max_messages,
        max_payload_bytes=settings.max_payload_bytes,
    )
    if errors:
        raise RequestValidationFailed(details=errors)
    payload = AnalyzeRequest.model_validate(body)

    caller = client_identity(request, settings.trust_forwarded_for)
    rate = await limiter.check(caller)
    rate_headers = rate.headers()
    if not rate.allowed:
        raise RateLimited(headers=rate_headers)

    client = request.app.state.completion_client
    try:
        data = await client.complete(
            payload.message_dicts(),
            model=payload.model,
            reasoning_effort=payload.reasoningEffort,
        )
    except CompletionConfigError as e:
        logger.error(f"[AnalyzeAPI] Completion client not configured: {e}")
        raise ServerConfigError(headers=rate_headers)
    except MalformedUpstreamResponse as e:
        logger.error(f"[AnalyzeAPI] Unparseable upstream response: {e}")
        raise UpstreamInvalid(headers=rate_headers)
    except UpstreamUnavailable as e:
        if e.status_code is not None:
            logger.error(f"[AnalyzeAPI] Upstream HTTP {e.status_code}: {e}")
            raise UpstreamInvalid(headers=rate_headers)
        logger.error(f"[AnalyzeAPI] Upstream unreachable: {e}")
        raise GatewayError(headers=rate_headers)
    except Exception as e:
        logger.error(f"[AnalyzeAPI] Unexpected failure from {caller}: {e}", exc_info=True)
        raise GatewayError(headers=rate_headers)

    return JSONResponse(data, headers=rate_headers)


@router.options("/analyze", status_code=204)
async def analyze_preflight() -> Response:
    """CORS preflight. Allow-Origin is added by the CORS middleware when allowed."""
    return Response(status_code=204, headers=preflight_headers())


@router.api_route(
    "/analyze", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False
)
async def analyze_wrong_method() -> None:
    raise MethodNotAllowed()
