"""
Completion clients -- the single path from agents to the language model.

Usage:
    from .llm import create_client

    client = create_client()  # Reads OPENAI_API_KEY, MAGI_MODEL, ...
    result = await client.analyze(history, system_instruction)
    print(result["decision"], result["reason"])

GatewayCompletionClient offers the same analyze() contract through a
remote /analyze gateway.
"""

from .client import (
    CompletionBackend,
    CompletionClient,
    build_request,
    create_client,
    with_system_instruction,
)
from .errors import (
    CompletionConfigError,
    CompletionError,
    MalformedUpstreamResponse,
    UpstreamUnavailable,
)
from .json_parser import extract_json, parse_structured
from .remote import GatewayCompletionClient
