"""
Deliberation events -- the observer channel between the core and any UI.

The orchestrator publishes; subscribers (CLI renderer, websocket bridge,
tests) receive. The core never imports a presentation layer.

Event types:
  phase_started      phase
  agent_result       phase, agent_id, payload=AgentResult
  phase_completed    phase, payload=[AgentResult] in agent id order
  decision           payload={"result", "approve", "deny", "error", "entry_id"}
  consensus          payload=ConsensusReport
  consensus_failed   payload={"error": str}
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from .session import Phase

logger = logging.getLogger(__name__)

PHASE_STARTED = "phase_started"
AGENT_RESULT = "agent_result"
PHASE_COMPLETED = "phase_completed"
DECISION = "decision"
CONSENSUS = "consensus"
CONSENSUS_FAILED = "consensus_failed"


@dataclass(frozen=True)
class DeliberationEvent:
    type: str
    session_id: str
    phase: Phase
    agent_id: int | None = None
    payload: Any = None


Observer = Callable[[DeliberationEvent], Union[None, Awaitable[None]]]


class EventBus:
    """Fan-out of events to subscribers. Observer failures are logged, not raised."""

    def __init__(self, observers: list[Observer] | None = None):
        self._observers: list[Observer] = list(observers or [])

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def publish(self, event: DeliberationEvent) -> None:
        for observer in list(self._observers):
            try:
                result = observer(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    f"[Events] Observer {getattr(observer, '__name__', observer)!r} "
                    f"failed on {event.type}: {e}"
                )


class EventRecorder:
    """Observer that keeps every event; handy for tests and transcripts."""

    def __init__(self) -> None:
        self.events: list[DeliberationEvent] = []

    def __call__(self, event: DeliberationEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> list[DeliberationEvent]:
        return [e for e in self.events if e.type == event_type]
