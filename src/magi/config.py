"""
Runtime configuration loaded from the environment.

Two settings objects, each built with from_env() and safe defaults:

  GatewaySettings     -- origin policy, payload limits, rate limiting
  CompletionSettings  -- upstream credentials, default model, timeout

Environment:
  OPENAI_API_KEY               Upstream key (required for direct calls)
  MAGI_MODEL=gpt-5.1           Default model
  MAGI_REASONING_EFFORT=none   none | low | medium | high
  MAGI_TIMEOUT=120             Upstream timeout in seconds
  MAGI_HISTORY_FILE            JSON file for the history log (optional)
  CORS_ORIGINS                 Comma-separated allow-list
  CORS_ORIGIN_REGEX            Extra origin pattern (e.g. preview deployments)
  ALLOW_MISSING_ORIGIN=true    Admit non-browser callers without Origin
  RATE_LIMIT_PER_MINUTE=50     Requests per window per caller IP
  RATE_LIMIT_WINDOW_SECONDS=60 Sliding window length
  RATE_LIMIT_FAIL_OPEN=true    Admit requests when the limiter store errors
  TRUST_FORWARDED_FOR=false    Key the limiter on X-Forwarded-For
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5.1"
ALLOWED_MODELS = ("gpt-5.1", "gpt-5-mini", "gpt-4.1", "gpt-4o", "gpt-4o-mini")
REASONING_EFFORTS = ("none", "low", "medium", "high")

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://localhost:8080",
]

DEFAULT_RATE_LIMIT = 50
DEFAULT_RATE_WINDOW_SECONDS = 60.0
DEFAULT_MAX_MESSAGES = 50
DEFAULT_MAX_PAYLOAD_BYTES = 50 * 1024
DEFAULT_TIMEOUT = 120.0


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("true", "1", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        logger.warning(f"[Config] {name} is not an integer, using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        logger.warning(f"[Config] {name} is not a number, using {default}")
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.environ.get(name, "")
    if raw.strip():
        return [item.strip() for item in raw.split(",") if item.strip()]
    return list(default)


@dataclass
class GatewaySettings:
    """Admission policy for the /analyze gateway.

    allow_missing_origin and rate_limit_fail_open are the two deliberate
    trust gaps: requests without an Origin header are admitted, and a
    failing limiter store admits instead of rejecting. Both default on and
    both can be switched off independently.
    """

    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))
    allowed_origin_regex: str | None = None
    allow_missing_origin: bool = True
    rate_limit: int = DEFAULT_RATE_LIMIT
    rate_window_seconds: float = DEFAULT_RATE_WINDOW_SECONDS
    rate_limit_fail_open: bool = True
    trust_forwarded_for: bool = False
    max_messages: int = DEFAULT_MAX_MESSAGES
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    allowed_models: tuple[str, ...] = ALLOWED_MODELS

    @classmethod
    def from_env(cls) -> "GatewaySettings":
        return cls(
            allowed_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            allowed_origin_regex=os.environ.get("CORS_ORIGIN_REGEX", "").strip() or None,
            allow_missing_origin=_env_bool("ALLOW_MISSING_ORIGIN", True),
            rate_limit=_env_int("RATE_LIMIT_PER_MINUTE", DEFAULT_RATE_LIMIT),
            rate_window_seconds=_env_float(
                "RATE_LIMIT_WINDOW_SECONDS", DEFAULT_RATE_WINDOW_SECONDS
            ),
            rate_limit_fail_open=_env_bool("RATE_LIMIT_FAIL_OPEN", True),
            trust_forwarded_for=_env_bool("TRUST_FORWARDED_FOR", False),
        )


@dataclass
class CompletionSettings:
    """Upstream completion service settings."""

    api_key: str = ""
    model: str = DEFAULT_MODEL
    reasoning_effort: str = "none"
    timeout: float = DEFAULT_TIMEOUT
    base_url: str | None = None

    @classmethod
    def from_env(cls) -> "CompletionSettings":
        model = os.environ.get("MAGI_MODEL", DEFAULT_MODEL).strip() or DEFAULT_MODEL
        if model not in ALLOWED_MODELS:
            logger.warning(f"[Config] MAGI_MODEL={model} is not allowed, using {DEFAULT_MODEL}")
            model = DEFAULT_MODEL
        effort = os.environ.get("MAGI_REASONING_EFFORT", "none").strip().lower() or "none"
        if effort not in REASONING_EFFORTS:
            logger.warning(f"[Config] MAGI_REASONING_EFFORT={effort} is not valid, using none")
            effort = "none"
        return cls(
            api_key=os.environ.get("OPENAI_API_KEY", "").strip(),
            model=model,
            reasoning_effort=effort,
            timeout=_env_float("MAGI_TIMEOUT", DEFAULT_TIMEOUT),
            base_url=os.environ.get("OPENAI_BASE_URL", "").strip() or None,
        )


def history_file_from_env() -> Path | None:
    """Location of the persisted history log, if configured."""
    raw = os.environ.get("MAGI_HISTORY_FILE", "").strip()
    return Path(raw) if raw else None
