"""
Origin policy and CORS headers for the gateway.

An Origin is allowed when it is
  - listed in GatewaySettings.allowed_origins (CORS_ORIGINS), or
  - matched by GatewaySettings.allowed_origin_regex (CORS_ORIGIN_REGEX), or
  - a loopback development origin (localhost / 127.0.0.1 / [::1], any port).

Requests without an Origin header come from non-browser callers. They are
admitted while allow_missing_origin is on, which is the documented trust
gap: origin checks only constrain browsers.

Access-Control-Allow-Origin is echoed only for allowed origins; disallowed
browser origins never see it.
"""

import logging
import re

from fastapi import Request

from ...config import GatewaySettings
from ..errors import OriginNotAllowed

logger = logging.getLogger(__name__)

LOOPBACK_ORIGIN_RE = re.compile(r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d{1,5})?$", re.IGNORECASE)
ALLOWED_METHODS = "POST, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = "86400"


class OriginPolicy:
    def __init__(self, settings: GatewaySettings):
        self._allowed = {o.rstrip("/") for o in settings.allowed_origins}
        self._pattern = re.compile(settings.allowed_origin_regex) if settings.allowed_origin_regex else None
        self._allow_missing = settings.allow_missing_origin

    def is_allowed(self, origin: str) -> bool:
        origin = origin.rstrip("/")
        if origin in self._allowed:
            return True
        if LOOPBACK_ORIGIN_RE.match(origin):
            return True
        return bool(self._pattern and self._pattern.fullmatch(origin))

    def check(self, origin: str | None) -> None:
        """Raise OriginNotAllowed unless the request may proceed."""
        if origin is None or not origin.strip():
            if self._allow_missing:
                return
            logger.warning("[Origin] Rejected request without Origin header")
            raise OriginNotAllowed()
        if not self.is_allowed(origin):
            logger.warning(f"[Origin] Rejected origin {origin}")
            raise OriginNotAllowed()

    def cors_headers(self, origin: str | None) -> dict[str, str]:
        if not origin or not self.is_allowed(origin):
            return {}
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Vary": "Origin",
        }


def preflight_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Max-Age": PREFLIGHT_MAX_AGE,
    }


async def check_origin(request: Request) -> str | None:
    """Route dependency: enforce the app's origin policy, return the Origin."""
    origin = request.headers.get("origin")
    request.app.state.origin_policy.check(origin)
    return origin


async def cors_middleware(request: Request, call_next):
    """Attach CORS headers for allowed origins to every response."""
    response = await call_next(request)
    origin = request.headers.get("origin")
    for name, value in request.app.state.origin_policy.cors_headers(origin).items():
        response.headers[name] = value
    return response
