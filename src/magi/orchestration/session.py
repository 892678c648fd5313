"""
Deliberation session -- the explicit context object the orchestrator works on.

One DeliberationSession per active deliberation. It owns the agents (and
through them the conversation memory), the current topic, the phase, the
per-phase results and the final artifacts of the last topic.

  IDLE -> ANALYSIS -> CROSS_REVIEW -> JUDGMENT -> CONSENSUS -> DONE
  IDLE -> SIMPLE_ANALYSIS -> DONE

Memory carries forward: a new topic re-enters ANALYSIS with every agent's
history intact. reset() is the only way to forget. It also bumps the
generation token so results of calls issued before the reset are
recognized as stale and dropped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..agents.agent import Agent, create_agents
from ..agents.personas import DEFAULT_SEATS
from .verdicts import Decision, Outcome, Verdict

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    IDLE = "IDLE"
    SIMPLE_ANALYSIS = "SIMPLE_ANALYSIS"
    ANALYSIS = "ANALYSIS"
    CROSS_REVIEW = "CROSS_REVIEW"
    JUDGMENT = "JUDGMENT"
    CONSENSUS = "CONSENSUS"
    DONE = "DONE"


IN_FLIGHT_PHASES = frozenset(
    {Phase.SIMPLE_ANALYSIS, Phase.ANALYSIS, Phase.CROSS_REVIEW, Phase.JUDGMENT, Phase.CONSENSUS}
)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class AgentResult:
    """One agent's output for one phase.

    Decision phases carry a verdict; CROSS_REVIEW carries an opinion.
    A failed call carries an error message and, in decision phases, an
    ERROR verdict.
    """

    agent_id: int
    persona_id: str
    phase: Phase
    verdict: Verdict | None = None
    opinion: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def decision(self) -> Decision:
        return self.verdict.decision if self.verdict else Decision.ERROR

    def to_log(self, persona_name: str = "") -> dict[str, Any]:
        entry: dict[str, Any] = {
            "type": "entry",
            "phase": self.phase.value,
            "agent_id": self.agent_id,
            "persona": persona_name or self.persona_id,
        }
        if self.verdict is not None:
            entry["decision"] = self.verdict.decision.value
            entry["reason"] = self.verdict.reason
        if self.opinion is not None:
            entry["opinion"] = self.opinion
        if self.error is not None:
            entry["error"] = self.error
        return entry


@dataclass(frozen=True)
class ConsensusReport:
    summary: str
    reason: str
    action: str

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "ConsensusReport":
        return cls(
            summary=str(data.get("summary", "") or ""),
            reason=str(data.get("reason", "") or ""),
            action=str(data.get("action", "") or ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {"summary": self.summary, "reason": self.reason, "action": self.action}


# =============================================================================
# SESSION
# =============================================================================


@dataclass
class DeliberationSession:
    """Mutable state of one deliberation seat-set across successive topics."""

    agents: list[Agent]
    id: str = field(default_factory=lambda: f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}")
    topic: str = ""
    phase: Phase = Phase.IDLE
    phase_results: dict[int, AgentResult] = field(default_factory=dict)
    final_decision: Outcome | None = None
    consensus_report: ConsensusReport | None = None
    transcript: list[dict[str, Any]] = field(default_factory=list)
    generation: int = 0

    def __post_init__(self) -> None:
        ids = [agent.id for agent in self.agents]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Agent ids must be unique: {ids}")

    @classmethod
    def create(cls, persona_ids: list[str] | tuple[str, ...] = DEFAULT_SEATS) -> "DeliberationSession":
        return cls(agents=create_agents(persona_ids))

    @property
    def in_flight(self) -> bool:
        return self.phase in IN_FLIGHT_PHASES

    def enabled_agents(self) -> list[Agent]:
        """Enabled agents in ascending id order."""
        return sorted((a for a in self.agents if a.enabled), key=lambda a: a.id)

    def agent(self, agent_id: int) -> Agent:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        raise KeyError(f"Unknown agent id: {agent_id}")

    def ordered_results(self) -> list[AgentResult]:
        return [self.phase_results[k] for k in sorted(self.phase_results)]

    def begin_topic(self, topic: str) -> None:
        self.topic = topic
        self.final_decision = None
        self.consensus_report = None
        self.phase_results = {}
        self.transcript = []

    def enter_phase(self, phase: Phase) -> None:
        logger.debug(f"[Session] {self.id}: {self.phase.value} -> {phase.value}")
        self.phase = phase
        self.phase_results = {}

    def reset(self) -> None:
        """Forget everything. Calls still in flight become stale."""
        for agent in self.agents:
            agent.clear()
        self.generation += 1
        self.topic = ""
        self.phase = Phase.IDLE
        self.phase_results = {}
        self.final_decision = None
        self.consensus_report = None
        self.transcript = []
        logger.info(f"[Session] {self.id} reset (generation {self.generation})")
