"""
Pydantic request models -- the /analyze contract.

The gateway validates the raw JSON body first (collect_analyze_errors) so it
can answer with an itemized 400; these models are the typed form the
validated payload is converted into before it reaches the completion client.
"""

from typing import Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ...config import DEFAULT_MODEL

_NULL_DEFAULTS = {"model": DEFAULT_MODEL, "reasoningEffort": "none"}


class ChatMessage(BaseModel):
    """One role-tagged message."""

    role: Literal["system", "user", "assistant"]
    content: str


class AnalyzeRequest(BaseModel):
    """Body of POST /analyze. A null model or reasoningEffort means the default."""

    messages: list[ChatMessage] = Field(..., min_length=1)
    model: str = Field(_NULL_DEFAULTS["model"], description="Upstream model identifier")
    reasoningEffort: str = Field(
        _NULL_DEFAULTS["reasoningEffort"], description="none | low | medium | high (effort-capable models only)"
    )

    @field_validator("model", "reasoningEffort", mode="before")
    @classmethod
    def _null_is_default(cls, value, info: ValidationInfo):
        if value is None:
            return _NULL_DEFAULTS[info.field_name]
        return value

    def message_dicts(self) -> list[dict[str, str]]:
        return [m.model_dump() for m in self.messages]
