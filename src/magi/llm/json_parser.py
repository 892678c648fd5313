"""
Structured-output parsing for completion content.

Models asked for a JSON object occasionally wrap it in a markdown fence.
extract_json() tolerates that and returns None on anything unparseable;
parse_structured() is the strict form used by the completion clients.
"""

import json
import logging
import re
from typing import Any

from .errors import MalformedUpstreamResponse

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def extract_json(text: str | None) -> Any | None:
    """Parse JSON from model output, unwrapping a ```json fence if present."""
    if not text:
        return None
    candidate = text.strip()
    fenced = _FENCE_RE.match(candidate)
    if fenced:
        candidate = fenced.group(1)
    try:
        return json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None


def parse_structured(content: str | None) -> dict[str, Any]:
    """Parse completion content into a dict or raise MalformedUpstreamResponse."""
    data = extract_json(content)
    if data is None:
        logger.warning(
            f"[JSONParser] Unparseable completion content ({len(content or '')} chars)"
        )
        raise MalformedUpstreamResponse("Completion content is not valid JSON")
    if not isinstance(data, dict):
        logger.warning(f"[JSONParser] Expected JSON object, got {type(data).__name__}")
        raise MalformedUpstreamResponse("Completion content is not a JSON object")
    return data
