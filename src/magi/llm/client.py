"""
Completion client -- stateless adapter over the upstream chat completion API.

Every higher component goes through this interface:

    client = create_client()
    result = await client.analyze(history, system_instruction)
    result["decision"], result["reason"]

analyze() prepends the system instruction, sends the full role-tagged
history and asks for a JSON object. complete() is the lower-level call the
gateway uses when the caller already built the message list.

Request shaping follows the upstream API family:
  - reasoning_effort is sent only to effort-capable models, and never when
    the requested effort is the sentinel "none"
  - temperature is fixed to 1 for reasoning models and 0.7 otherwise

No retries: the SDK client is built with max_retries=0 and failures are
raised as CompletionError subclasses. Retry policy belongs to the caller.
"""

import logging
import time
from typing import Any, Protocol, Sequence, runtime_checkable

import openai

from ..config import ALLOWED_MODELS, DEFAULT_MODEL, CompletionSettings
from .errors import CompletionConfigError, MalformedUpstreamResponse, UpstreamUnavailable
from .json_parser import parse_structured

logger = logging.getLogger(__name__)

REASONING_MODELS = frozenset({"gpt-5.1", "gpt-5-mini"})
EFFORT_MODELS = frozenset({"gpt-5.1"})
REASONING_TEMPERATURE = 1.0
CREATIVE_TEMPERATURE = 0.7
NO_EFFORT = "none"

Message = dict[str, str]


# =============================================================================
# PROTOCOL
# =============================================================================


@runtime_checkable
class CompletionBackend(Protocol):
    """Anything the orchestrator can send an agent turn to."""

    async def analyze(
        self, history: Sequence[Message], system_instruction: str
    ) -> dict[str, Any]: ...


# =============================================================================
# REQUEST SHAPING
# =============================================================================


def build_request(
    messages: Sequence[Message],
    model: str = DEFAULT_MODEL,
    reasoning_effort: str | None = None,
) -> dict[str, Any]:
    """Build the upstream request body for one completion call."""
    body: dict[str, Any] = {
        "model": model,
        "messages": [dict(m) for m in messages],
        "response_format": {"type": "json_object"},
    }
    if model in EFFORT_MODELS and reasoning_effort and reasoning_effort != NO_EFFORT:
        body["reasoning_effort"] = reasoning_effort
    if model in REASONING_MODELS:
        body["temperature"] = REASONING_TEMPERATURE
    else:
        body["temperature"] = CREATIVE_TEMPERATURE
    return body


def with_system_instruction(
    history: Sequence[Message], system_instruction: str
) -> list[Message]:
    """Prepend the system instruction to a copy of the history."""
    return [{"role": "system", "content": system_instruction}, *[dict(m) for m in history]]


# =============================================================================
# CLIENT
# =============================================================================


class CompletionClient:
    """
    Direct upstream client built on openai.AsyncOpenAI.

    Usage:
        client = CompletionClient(api_key="sk-...", model="gpt-5.1", reasoning_effort="low")
        result = await client.analyze(agent.history, persona.system_prompt)

    The SDK client is created lazily so a missing key surfaces as
    CompletionConfigError at call time, not at import or startup.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        reasoning_effort: str = NO_EFFORT,
        timeout: float = 120.0,
        base_url: str | None = None,
        sdk_client: Any = None,
    ):
        if model not in ALLOWED_MODELS:
            raise ValueError(f"Unsupported model: {model}")
        self._api_key = api_key
        self._model = model
        self._reasoning_effort = reasoning_effort
        self._timeout = timeout
        self._base_url = base_url
        self._client: Any = sdk_client
        self._call_count = 0

    @property
    def model(self) -> str:
        return self._model

    @property
    def reasoning_effort(self) -> str:
        return self._reasoning_effort

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def configured(self) -> bool:
        """True once calls can be made (key present or SDK client injected)."""
        return self._client is not None or bool(self._api_key)

    def _sdk(self) -> Any:
        if self._client is None:
            if not self._api_key:
                raise CompletionConfigError("Server configuration error: API Key missing")
            self._client = openai.AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
                max_retries=0,
            )
            logger.info(
                f"[Completion] Initialized upstream client "
                f"(model={self._model}, timeout={self._timeout}s)"
            )
        return self._client

    async def analyze(
        self, history: Sequence[Message], system_instruction: str
    ) -> dict[str, Any]:
        """Send one agent turn: system instruction + full history."""
        return await self.complete(with_system_instruction(history, system_instruction))

    async def complete(
        self,
        messages: Sequence[Message],
        model: str | None = None,
        reasoning_effort: str | None = None,
    ) -> dict[str, Any]:
        """Send a prepared message list and return the parsed JSON object."""
        sdk = self._sdk()
        body = build_request(
            messages,
            model=model or self._model,
            reasoning_effort=reasoning_effort if reasoning_effort is not None else self._reasoning_effort,
        )

        start = time.time()
        try:
            completion = await sdk.chat.completions.create(**body)
        except openai.APIStatusError as e:
            logger.error(f"[Completion] Upstream returned HTTP {e.status_code}")
            raise UpstreamUnavailable(
                f"Upstream returned HTTP {e.status_code}", status_code=e.status_code
            ) from e
        except openai.APIError as e:
            logger.error(f"[Completion] Upstream call failed: {type(e).__name__}")
            raise UpstreamUnavailable(f"Upstream call failed: {type(e).__name__}") from e
        finally:
            self._call_count += 1

        try:
            content = completion.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise MalformedUpstreamResponse("Completion has no message content") from e

        data = parse_structured(content)
        logger.debug(
            f"[Completion] {body['model']}: {len(body['messages'])} messages "
            f"({(time.time() - start) * 1000:.0f}ms)"
        )
        return data


# =============================================================================
# FACTORY
# =============================================================================


def create_client(settings: CompletionSettings | None = None, **overrides: Any) -> CompletionClient:
    """
    Create a completion client from the environment.

    Keyword overrides (model, reasoning_effort, api_key, ...) win over
    CompletionSettings.from_env().
    """
    settings = settings or CompletionSettings.from_env()
    if not settings.api_key and "api_key" not in overrides:
        logger.warning("[Completion] OPENAI_API_KEY not set -- calls will fail")
    params: dict[str, Any] = {
        "api_key": settings.api_key,
        "model": settings.model,
        "reasoning_effort": settings.reasoning_effort,
        "timeout": settings.timeout,
        "base_url": settings.base_url,
    }
    params.update({k: v for k, v in overrides.items() if v is not None})
    return CompletionClient(**params)
