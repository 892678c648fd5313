"""
GatewayCompletionClient -- completion calls routed through the /analyze gateway.

Same contract as CompletionClient.analyze(), but instead of holding an
upstream key it posts the prepared messages to a deployed gateway:

  POST {base_url}/analyze  {"messages": [...], "model": ..., "reasoningEffort": ...}

Status mapping:
  200       -> parsed JSON object
  502       -> MalformedUpstreamResponse (gateway could not parse the AI output)
  other     -> UpstreamUnavailable (includes 429 and 5xx)
  transport -> UpstreamUnavailable

No retries; the orchestrator isolates failures per agent.
"""

import logging
from typing import Any, Sequence

import httpx

from ..config import DEFAULT_MODEL
from .client import Message, NO_EFFORT, with_system_instruction
from .errors import MalformedUpstreamResponse, UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120
MAX_RESPONSE_BYTES = 1_000_000


class GatewayCompletionClient:
    """
    Adapter: sends agent turns to a remote gateway instead of the upstream.

    Usage:
        client = GatewayCompletionClient("https://magi.example.com", origin="https://magi.example.com")
        orchestrator = DeliberationOrchestrator(client=client)
    """

    def __init__(
        self,
        base_url: str,
        model: str = DEFAULT_MODEL,
        reasoning_effort: str = NO_EFFORT,
        origin: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._reasoning_effort = reasoning_effort
        self._origin = origin
        self._timeout = timeout
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._origin:
            headers["Origin"] = self._origin
        return headers

    async def analyze(
        self, history: Sequence[Message], system_instruction: str
    ) -> dict[str, Any]:
        payload = {
            "messages": with_system_instruction(history, system_instruction),
            "model": self._model,
            "reasoningEffort": self._reasoning_effort,
        }
        url = f"{self._base_url}/analyze"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"[GatewayClient] Transport error on {url}: {type(e).__name__}")
            raise UpstreamUnavailable(f"Gateway unreachable: {type(e).__name__}") from e

        if response.status_code == 502:
            raise MalformedUpstreamResponse("Gateway reported an invalid AI response")
        if response.status_code != 200:
            logger.error(
                f"[GatewayClient] HTTP {response.status_code}: {_error_field(response)}"
            )
            raise UpstreamUnavailable(
                f"Gateway returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if len(response.content) > MAX_RESPONSE_BYTES:
            raise MalformedUpstreamResponse(
                f"Gateway response exceeds {MAX_RESPONSE_BYTES} byte limit"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedUpstreamResponse("Gateway response is not JSON") from e
        if not isinstance(data, dict):
            raise MalformedUpstreamResponse("Gateway response is not a JSON object")
        return data


def _error_field(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "<non-JSON body>"
    if isinstance(body, dict):
        return str(body.get("error", ""))
    return ""
