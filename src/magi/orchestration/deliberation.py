"""
Deliberation Orchestrator -- phase state machine over a council of judge agents.

Discussion path:
  ANALYSIS      -- every enabled agent judges the topic independently (parallel)
  (gate)        -- wait for the proceed signal
  CROSS_REVIEW  -- each agent reacts to the OTHER agents' analysis reasons (parallel)
  (gate)        -- wait for the proceed signal
  JUDGMENT      -- each agent commits to a final decision (parallel)
                   -> aggregate + persist to the history log (durability boundary)
  CONSENSUS     -- one synthesis call producing {summary, reason, action}
  DONE

Simple path:
  SIMPLE_ANALYSIS -- raw topic to every enabled agent, aggregate, persist, DONE

Rules:
- Fan-out is all-settled: one agent's failure becomes an ERROR result for that
  agent only and never cancels the others.
- Phase k+1 never starts before every phase-k call has settled (join barrier).
- Results are emitted and logged in ascending agent id, never completion order.
- Each agent's history is touched only by its own call in the current phase.
- Consensus failure is non-fatal; the persisted decision stands.
- A session reset while calls are in flight makes their results stale: they
  are dropped and submit() ends with SessionReset.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ..agents.agent import Agent
from ..agents.personas import PersonaCatalog
from ..harness.history import HistoryLogEntry, HistorySink
from ..llm.client import CompletionBackend
from ..llm.errors import CompletionError, MalformedUpstreamResponse
from ..security.validators import validate_length, validate_not_empty
from .events import (
    AGENT_RESULT,
    CONSENSUS,
    CONSENSUS_FAILED,
    DECISION,
    PHASE_COMPLETED,
    PHASE_STARTED,
    DeliberationEvent,
    EventBus,
)
from .gates import ProceedGate, auto_proceed
from .session import AgentResult, ConsensusReport, DeliberationSession, Phase
from .verdicts import Outcome, Tally, Verdict, tally

logger = logging.getLogger(__name__)

DEFAULT_REASON_CHAR_LIMIT = 200
MAX_TOPIC_LENGTH = 10_000

CONSENSUS_SYSTEM_PROMPT = (
    "You are the secretary of a deliberation council. You do not vote. "
    "Read the members' final decisions and reasons and write the council's "
    "consensus report.\n\n"
    "Answer with a JSON object: "
    '{"summary": "...", "reason": "...", "action": "..."} where summary states '
    "the collective position, reason explains how the members' arguments led "
    "there, and action is the concrete next step."
)


# =============================================================================
# ERRORS
# =============================================================================


class DeliberationError(Exception):
    """Base class for orchestrator errors."""


class DeliberationInProgress(DeliberationError):
    """A topic is already being deliberated in this session."""


class NoEnabledAgents(DeliberationError):
    """Every agent in the session is disabled."""


class SessionReset(DeliberationError):
    """The session was reset while this deliberation was running."""


class ConsensusSynthesisFailure(DeliberationError):
    """The consensus call failed. Prior phases remain valid."""


# =============================================================================
# CONFIGURATION & RESULT
# =============================================================================


@dataclass
class DeliberationConfig:
    reason_char_limit: int = DEFAULT_REASON_CHAR_LIMIT
    gated_phases: frozenset[Phase] = frozenset({Phase.CROSS_REVIEW, Phase.JUDGMENT})
    enable_consensus: bool = True


@dataclass
class DeliberationResult:
    """Everything one submit() produced, phases in execution order."""

    session_id: str
    topic: str
    final_decision: Outcome
    tally: Tally
    phases: dict[Phase, list[AgentResult]] = field(default_factory=dict)
    consensus_report: ConsensusReport | None = None
    consensus_error: str | None = None
    history_entry_id: str | None = None


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class DeliberationOrchestrator:
    """
    Drives one session through the deliberation phases.

    Usage:
        session = DeliberationSession.create(["scientist", "mother", "woman"])
        orchestrator = DeliberationOrchestrator(client=create_client(), history=HistoryLog())
        result = await orchestrator.submit(session, "Should we adopt a four-day week?")
        result.final_decision, result.consensus_report

    Pass gate=ManualGate() to pause between phases until proceed() is called.
    """

    def __init__(
        self,
        client: CompletionBackend,
        personas: PersonaCatalog | None = None,
        config: DeliberationConfig | None = None,
        history: HistorySink | None = None,
        events: EventBus | None = None,
    ):
        self._client = client
        self._personas = personas or PersonaCatalog()
        self.config = config or DeliberationConfig()
        self._history = history
        self.events = events or EventBus()

    async def submit(
        self,
        session: DeliberationSession,
        topic: str,
        discussion: bool = True,
        gate: ProceedGate | None = None,
    ) -> DeliberationResult:
        """Deliberate one topic. Agent histories carry over from earlier topics."""
        topic = validate_not_empty(topic, "topic")
        validate_length(topic, "topic", max_length=MAX_TOPIC_LENGTH)

        if session.in_flight:
            raise DeliberationInProgress(
                f"Session {session.id} is already in {session.phase.value}"
            )
        agents = session.enabled_agents()
        if not agents:
            raise NoEnabledAgents("Enable at least one agent")
        for agent in agents:
            self._personas.get(agent.persona_id)

        generation = session.generation
        session.begin_topic(topic)
        logger.info(
            f"[Deliberation] {session.id}: new topic for {len(agents)} agents "
            f"({'discussion' if discussion else 'simple'})"
        )

        try:
            if discussion:
                return await self._run_discussion(session, topic, generation, gate or auto_proceed)
            return await self._run_simple(session, topic, generation)
        except SessionReset:
            raise
        except Exception:
            if session.generation == generation:
                session.phase = Phase.IDLE
            raise

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    async def _run_simple(
        self, session: DeliberationSession, topic: str, generation: int
    ) -> DeliberationResult:
        agents = session.enabled_agents()
        results = await self._run_phase(
            session, Phase.SIMPLE_ANALYSIS, generation, {a.id: topic for a in agents}
        )
        result = await self._decide(session, topic, results, generation)
        result.phases[Phase.SIMPLE_ANALYSIS] = results
        session.phase = Phase.DONE
        return result

    async def _run_discussion(
        self,
        session: DeliberationSession,
        topic: str,
        generation: int,
        gate: ProceedGate,
    ) -> DeliberationResult:
        agents = session.enabled_agents()
        limit = self.config.reason_char_limit
        phases: dict[Phase, list[AgentResult]] = {}

        analysis_prompt = f"{topic}\n\n(Keep your reason within {limit} characters.)"
        analysis = await self._run_phase(
            session, Phase.ANALYSIS, generation, {a.id: analysis_prompt for a in agents}
        )
        phases[Phase.ANALYSIS] = analysis

        await self._wait_for_gate(session, Phase.CROSS_REVIEW, generation, gate)
        review_prompts = {
            a.id: self._cross_review_prompt(topic, a.id, analysis) for a in agents
        }
        phases[Phase.CROSS_REVIEW] = await self._run_phase(
            session, Phase.CROSS_REVIEW, generation, review_prompts
        )

        await self._wait_for_gate(session, Phase.JUDGMENT, generation, gate)
        judgment_prompt = (
            f"Considering the whole discussion so far, give your final decision on "
            f"the topic: {topic}\n\n"
            'Answer with a JSON object: {"decision": "APPROVE" | "DENY", "reason": "..."} '
            f"(reason within {limit} characters)."
        )
        judgment = await self._run_phase(
            session, Phase.JUDGMENT, generation, {a.id: judgment_prompt for a in agents}
        )
        phases[Phase.JUDGMENT] = judgment

        result = await self._decide(session, topic, judgment, generation)
        result.phases = phases

        if Phase.CONSENSUS in self.config.gated_phases:
            await self._wait_for_gate(session, Phase.CONSENSUS, generation, gate)
        if self.config.enable_consensus:
            await self._run_consensus(session, topic, judgment, result, generation)

        session.phase = Phase.DONE
        logger.info(f"[Deliberation] {session.id}: done ({result.final_decision.value})")
        return result

    # -------------------------------------------------------------------------
    # Phase mechanics
    # -------------------------------------------------------------------------

    async def _run_phase(
        self,
        session: DeliberationSession,
        phase: Phase,
        generation: int,
        prompts: dict[int, str],
    ) -> list[AgentResult]:
        """Fan out one prompt per agent, join on all of them, then publish in id order."""
        session.enter_phase(phase)
        session.transcript.append({"type": "phase", "phase": phase.value})
        await self._publish(session, PHASE_STARTED, phase)
        logger.info(f"[Deliberation] Phase {phase.value}: {len(prompts)} agents")

        agent_ids = sorted(prompts)
        outcomes = await asyncio.gather(
            *[
                self._call_agent(session, session.agent(aid), phase, prompts[aid], generation)
                for aid in agent_ids
            ],
            return_exceptions=True,
        )
        self._ensure_current(session, generation)

        by_id: dict[int, AgentResult] = {}
        for aid, outcome in zip(agent_ids, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(f"[Deliberation] Agent {aid} crashed in {phase.value}: {outcome}")
                outcome = self._failure(session.agent(aid), phase, outcome)
            by_id[aid] = outcome

        session.phase_results = by_id
        ordered = session.ordered_results()
        for result in ordered:
            if phase is not Phase.CROSS_REVIEW:
                session.agent(result.agent_id).last_verdict = result.verdict
            persona_name = self._personas.get(result.persona_id).name
            session.transcript.append(result.to_log(persona_name))
            await self._publish(session, AGENT_RESULT, phase, result.agent_id, result)
        await self._publish(session, PHASE_COMPLETED, phase, payload=ordered)

        failed = sum(1 for r in ordered if not r.ok)
        if failed:
            logger.warning(f"[Deliberation] Phase {phase.value}: {failed}/{len(ordered)} agents failed")
        return ordered

    async def _call_agent(
        self,
        session: DeliberationSession,
        agent: Agent,
        phase: Phase,
        prompt: str,
        generation: int,
    ) -> AgentResult:
        """One agent turn. Failures are contained to this agent."""
        persona = self._personas.get(agent.persona_id)
        try:
            data = await self._client.analyze(agent.pending_messages(prompt), persona.system_prompt)
            if phase is Phase.CROSS_REVIEW:
                result = AgentResult(
                    agent_id=agent.id,
                    persona_id=agent.persona_id,
                    phase=phase,
                    opinion=_opinion_text(data),
                )
            else:
                result = AgentResult(
                    agent_id=agent.id,
                    persona_id=agent.persona_id,
                    phase=phase,
                    verdict=Verdict.from_response(data),
                )
        except CompletionError as e:
            logger.warning(
                f"[Deliberation] Agent {agent.id} ({persona.id}) failed in "
                f"{phase.value}: {type(e).__name__}: {e}"
            )
            return self._failure(agent, phase, e)

        if session.generation != generation:
            logger.info(f"[Deliberation] Dropping stale result from agent {agent.id}")
            return result
        agent.commit_exchange(prompt, data)
        return result

    def _failure(self, agent: Agent, phase: Phase, error: Exception) -> AgentResult:
        message = f"{type(error).__name__}: {error}"
        return AgentResult(
            agent_id=agent.id,
            persona_id=agent.persona_id,
            phase=phase,
            verdict=None if phase is Phase.CROSS_REVIEW else Verdict.error(message),
            error=message,
        )

    def _cross_review_prompt(self, topic: str, agent_id: int, analysis: list[AgentResult]) -> str:
        lines = []
        for other in analysis:
            if other.agent_id == agent_id or not other.ok or other.verdict is None:
                continue
            name = self._personas.get(other.persona_id).name
            lines.append(f"- {name} ({other.verdict.decision.value}): {other.verdict.reason}")
        opinions = "\n".join(lines) if lines else "- (no other opinions are available)"
        return (
            f"Topic: {topic}\n\n"
            f"Opinions from the other council members:\n{opinions}\n\n"
            "React to these opinions from your own standpoint. Do NOT give a final "
            "decision yet.\n"
            'Answer with a JSON object: {"opinion": "..."} '
            f"(within {self.config.reason_char_limit} characters)."
        )

    async def _wait_for_gate(
        self,
        session: DeliberationSession,
        next_phase: Phase,
        generation: int,
        gate: ProceedGate,
    ) -> None:
        if next_phase in self.config.gated_phases:
            await gate(next_phase)
        self._ensure_current(session, generation)

    def _ensure_current(self, session: DeliberationSession, generation: int) -> None:
        if session.generation != generation:
            logger.info(f"[Deliberation] {session.id} was reset; abandoning stale deliberation")
            raise SessionReset(f"Session {session.id} was reset during deliberation")

    # -------------------------------------------------------------------------
    # Decision, persistence, consensus
    # -------------------------------------------------------------------------

    async def _decide(
        self,
        session: DeliberationSession,
        topic: str,
        results: list[AgentResult],
        generation: int,
    ) -> DeliberationResult:
        counts = tally(r.decision for r in results)
        outcome = counts.outcome
        session.final_decision = outcome
        session.transcript.append(
            {
                "type": "final-report",
                "result": outcome.value,
                "approve": counts.approve,
                "deny": counts.deny,
                "error": counts.error,
            }
        )

        entry_id = self._persist(topic, outcome, session.transcript)
        result = DeliberationResult(
            session_id=session.id,
            topic=topic,
            final_decision=outcome,
            tally=counts,
            history_entry_id=entry_id,
        )
        logger.info(
            f"[Deliberation] Decision {outcome.value} "
            f"(approve={counts.approve}, deny={counts.deny}, error={counts.error})"
        )
        await self._publish(
            session,
            DECISION,
            session.phase,
            payload={
                "result": outcome.value,
                "approve": counts.approve,
                "deny": counts.deny,
                "error": counts.error,
                "entry_id": entry_id,
            },
        )
        return result

    def _persist(self, topic: str, outcome: Outcome, transcript: list[dict[str, Any]]) -> str | None:
        if self._history is None:
            return None
        entry = HistoryLogEntry.create(topic=topic, result=outcome.value, logs=transcript)
        try:
            self._history.append(entry)
        except OSError as e:
            logger.error(f"[Deliberation] History persistence failed: {e}")
            return None
        return entry.id

    async def _run_consensus(
        self,
        session: DeliberationSession,
        topic: str,
        judgment: list[AgentResult],
        result: DeliberationResult,
        generation: int,
    ) -> None:
        session.enter_phase(Phase.CONSENSUS)
        session.transcript.append({"type": "phase", "phase": Phase.CONSENSUS.value})
        await self._publish(session, PHASE_STARTED, Phase.CONSENSUS)

        try:
            report = await self._synthesize(topic, judgment, result.final_decision)
        except ConsensusSynthesisFailure as e:
            self._ensure_current(session, generation)
            logger.warning(f"[Deliberation] Consensus synthesis failed (non-fatal): {e}")
            result.consensus_error = str(e)
            await self._publish(
                session, CONSENSUS_FAILED, Phase.CONSENSUS, payload={"error": str(e)}
            )
            return

        self._ensure_current(session, generation)
        session.consensus_report = report
        result.consensus_report = report
        session.transcript.append({"type": "consensus", **report.to_dict()})
        await self._publish(session, CONSENSUS, Phase.CONSENSUS, payload=report)

    async def _synthesize(
        self, topic: str, judgment: list[AgentResult], outcome: Outcome
    ) -> ConsensusReport:
        members = []
        for r in judgment:
            name = self._personas.get(r.persona_id).name
            reason = r.verdict.reason if r.verdict else ""
            members.append(
                {"agent_id": r.agent_id, "member": name, "decision": r.decision.value, "reason": reason}
            )
        message = (
            f"Topic: {topic}\n\n"
            f"Collective decision by majority: {outcome.value}\n\n"
            f"Final decisions of the members:\n"
            f"{json.dumps(members, ensure_ascii=False, indent=2)}"
        )
        try:
            data = await self._client.analyze(
                [{"role": "user", "content": message}], CONSENSUS_SYSTEM_PROMPT
            )
        except Exception as e:
            raise ConsensusSynthesisFailure(f"{type(e).__name__}: {e}") from e
        if not isinstance(data, dict) or not any(data.get(k) for k in ("summary", "reason", "action")):
            raise ConsensusSynthesisFailure("Consensus response has no report fields")
        return ConsensusReport.from_response(data)

    async def _publish(
        self,
        session: DeliberationSession,
        event_type: str,
        phase: Phase,
        agent_id: int | None = None,
        payload: Any = None,
    ) -> None:
        await self.events.publish(
            DeliberationEvent(
                type=event_type,
                session_id=session.id,
                phase=phase,
                agent_id=agent_id,
                payload=payload,
            )
        )


def _opinion_text(data: dict[str, Any]) -> str:
    for key in ("opinion", "reason", "comment"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    raise MalformedUpstreamResponse("Cross-review response has no opinion")
