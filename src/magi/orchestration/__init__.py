"""
Multi-agent deliberation.

  DeliberationOrchestrator: phase state machine (analysis, cross review,
      judgment, consensus) over the enabled agents of one session
  DeliberationSession: explicit per-deliberation context (agents, phase, results)
  aggregate(): majority verdict aggregator

Both paths (discussion and simple) share the same fan-out, ordering and
persistence rules.
"""
from .deliberation import (
    ConsensusSynthesisFailure,
    DeliberationConfig,
    DeliberationError,
    DeliberationInProgress,
    DeliberationOrchestrator,
    DeliberationResult,
    NoEnabledAgents,
    SessionReset,
)
from .events import DeliberationEvent, EventBus, EventRecorder
from .gates import ManualGate, ProceedGate, auto_proceed
from .session import AgentResult, ConsensusReport, DeliberationSession, Phase
from .verdicts import Decision, Outcome, Tally, Verdict, aggregate, tally
