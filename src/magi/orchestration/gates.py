"""
Proceed gates -- the human-in-the-loop pause between deliberation phases.

A gate is any async callable taking the phase about to start. The
orchestrator awaits it after a phase's results are logged; it has no
timeout and no cancellation.

  auto_proceed  -- never waits (auto-chained deliberation)
  ManualGate    -- waits until proceed() is called, once per gated phase
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .session import Phase

logger = logging.getLogger(__name__)

ProceedGate = Callable[[Phase], Awaitable[None]]


async def auto_proceed(next_phase: Phase) -> None:
    return None


class ManualGate:
    """
    Gate released by an explicit external signal.

    Usage:
        gate = ManualGate()
        task = asyncio.create_task(orchestrator.submit(session, topic, gate=gate))
        ...  # show phase results to the user
        gate.proceed()

    A proceed() issued before the orchestrator reaches the gate is kept and
    releases the next wait immediately.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.waiting_for: Phase | None = None

    @property
    def waiting(self) -> bool:
        return self.waiting_for is not None

    def proceed(self) -> None:
        self._event.set()

    async def __call__(self, next_phase: Phase) -> None:
        self.waiting_for = next_phase
        logger.info(f"[Gate] Waiting for proceed signal before {next_phase.value}")
        try:
            await self._event.wait()
        finally:
            self._event.clear()
            self.waiting_for = None
