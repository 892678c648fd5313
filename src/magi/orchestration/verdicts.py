"""
Verdicts and the majority aggregator.

aggregate() is pure and order-independent:
  approve > deny  -> APPROVED
  deny > approve  -> DENIED
  otherwise       -> PENDING  (exact tie, empty input, all ERROR)

ERROR counts as neither side.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from ..llm.errors import MalformedUpstreamResponse

_APPROVE_LABELS = ("approve", "approved", "grant", "granted", "yes", "承認", "可決")
_DENY_LABELS = ("deny", "denied", "reject", "rejected", "no", "否定", "否決")


class Decision(str, Enum):
    APPROVE = "APPROVE"
    DENY = "DENY"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, label: Any) -> "Decision":
        """Normalize a model-produced decision label."""
        if isinstance(label, Decision):
            return label
        if not isinstance(label, str):
            return cls.ERROR
        text = label.strip().lower()
        if not text:
            return cls.ERROR
        # Only the leading token counts: "承認 (GRANTED)" approves, "承認しない" does not.
        head = re.split(r"[\s(（\[]+", text)[0].strip(".,:;!)]。、「」")
        if head in _APPROVE_LABELS:
            return cls.APPROVE
        if head in _DENY_LABELS:
            return cls.DENY
        return cls.ERROR


class Outcome(str, Enum):
    APPROVED = "APPROVED"
    DENIED = "DENIED"
    PENDING = "PENDING"


@dataclass(frozen=True)
class Verdict:
    decision: Decision
    reason: str = ""

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "Verdict":
        """Build a verdict from a parsed {decision, reason} object."""
        if "decision" not in data:
            raise MalformedUpstreamResponse("Response has no 'decision' field")
        reason = data.get("reason", "")
        return cls(decision=Decision.parse(data["decision"]), reason=str(reason or ""))

    @classmethod
    def error(cls, reason: str) -> "Verdict":
        return cls(decision=Decision.ERROR, reason=reason)

    def to_dict(self) -> dict[str, str]:
        return {"decision": self.decision.value, "reason": self.reason}


@dataclass(frozen=True)
class Tally:
    approve: int = 0
    deny: int = 0
    error: int = 0

    @property
    def outcome(self) -> Outcome:
        if self.approve > self.deny:
            return Outcome.APPROVED
        if self.deny > self.approve:
            return Outcome.DENIED
        return Outcome.PENDING


def tally(decisions: Iterable[Decision]) -> Tally:
    approve = deny = error = 0
    for label in decisions:
        decision = Decision.parse(label)
        if decision is Decision.APPROVE:
            approve += 1
        elif decision is Decision.DENY:
            deny += 1
        else:
            error += 1
    return Tally(approve=approve, deny=deny, error=error)


def aggregate(decisions: Iterable[Decision]) -> Outcome:
    """Collective outcome of a set of per-agent decisions."""
    return tally(decisions).outcome
