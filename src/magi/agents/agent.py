"""
Agent -- one judge seat: persona reference, history, enablement, last verdict.

The history is the agent's memory. It is re-sent in full on every call, it
survives across topics within a session, and only Session.reset() clears
it. A user turn is committed together with its assistant reply
(commit_exchange), so the history never holds an orphaned request.
"""

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..orchestration.verdicts import Verdict


@dataclass
class Agent:
    id: int
    persona_id: str
    enabled: bool = True
    history: list[dict[str, str]] = field(default_factory=list)
    last_verdict: "Verdict | None" = None

    def pending_messages(self, prompt: str) -> list[dict[str, str]]:
        """History plus the not-yet-committed user turn."""
        return [*self.history, {"role": "user", "content": prompt}]

    def commit_exchange(self, prompt: str, response: dict[str, Any]) -> None:
        """Append a user turn and its assistant reply as one unit."""
        self.history.append({"role": "user", "content": prompt})
        self.history.append(
            {"role": "assistant", "content": json.dumps(response, ensure_ascii=False)}
        )

    def clear(self) -> None:
        self.history.clear()
        self.last_verdict = None


def create_agents(persona_ids: list[str] | tuple[str, ...]) -> list[Agent]:
    """Create agents with ids 1..N, one per persona id."""
    if not persona_ids:
        raise ValueError("At least one agent is required")
    return [Agent(id=i, persona_id=pid) for i, pid in enumerate(persona_ids, start=1)]
