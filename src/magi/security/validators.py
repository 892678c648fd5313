"""
Input Validators - validation of external input at system boundaries.

Parse at the boundary: validate and type-check all external input
before it enters the system. Never pass raw dicts or unvalidated
strings through multiple layers.

Two styles live here:
  - validate_* helpers raise ValidationError on the first problem (topics,
    CLI options)
  - collect_analyze_errors() gathers every problem in an /analyze payload so
    the gateway can answer with an itemized 400 instead of raising
"""

import json
import logging
from typing import Any, Sequence

logger = logging.getLogger(__name__)

MESSAGE_ROLES = ("system", "user", "assistant")


class ValidationError(ValueError):
    """Raised when input validation fails. Contains a user-friendly message."""

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = details or [message]


def validate_not_empty(value: str, field_name: str = "input") -> str:
    """Validate that a string is not empty or whitespace-only."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")
    return value.strip()


def validate_length(
    value: str,
    field_name: str = "input",
    min_length: int = 0,
    max_length: int = 100_000,
) -> str:
    """Validate string length is within bounds."""
    if len(value) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters")
    if len(value) > max_length:
        raise ValidationError(f"{field_name} must be at most {max_length} characters")
    return value


def validate_in_choices(value: str, choices: Sequence[str], field_name: str = "value") -> str:
    """Validate that a value is one of the allowed choices."""
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def serialized_size(value: Any) -> int:
    """Size in bytes of the compact UTF-8 JSON encoding of value."""
    return len(
        json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str).encode("utf-8")
    )


def collect_analyze_errors(
    body: Any,
    allowed_models: Sequence[str],
    reasoning_efforts: Sequence[str],
    max_messages: int = 50,
    max_payload_bytes: int = 50 * 1024,
) -> list[str]:
    """
    Return every problem found in an /analyze request body (empty = valid).

    Checks:
      - body is a JSON object
      - messages is a non-empty list of {role, content} objects
      - at most max_messages entries ("Too many messages (max N)")
      - serialized size of the body within max_payload_bytes ("Payload too large")
      - model, if present, is allowed ("Invalid model")
      - reasoningEffort, if present, is a known level ("Invalid reasoningEffort")
    """
    if not isinstance(body, dict):
        return ["Request body must be a JSON object"]

    errors: list[str] = []
    messages = body.get("messages")

    if not isinstance(messages, list) or not messages:
        errors.append("messages must be a non-empty array")
    else:
        if len(messages) > max_messages:
            errors.append(f"Too many messages (max {max_messages})")
        for i, message in enumerate(messages[:max_messages]):
            if not isinstance(message, dict):
                errors.append(f"messages[{i}] must be an object")
                continue
            if message.get("role") not in MESSAGE_ROLES:
                errors.append(f"messages[{i}].role must be one of: {', '.join(MESSAGE_ROLES)}")
            if not isinstance(message.get("content"), str):
                errors.append(f"messages[{i}].content must be a string")

    if serialized_size(body) > max_payload_bytes:
        errors.append("Payload too large")

    model = body.get("model")
    if model is not None and model not in allowed_models:
        errors.append("Invalid model")

    effort = body.get("reasoningEffort")
    if effort is not None and effort not in reasoning_efforts:
        errors.append("Invalid reasoningEffort")

    if errors:
        logger.info(f"[Validators] /analyze payload rejected: {len(errors)} problem(s)")
    return errors
