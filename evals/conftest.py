"""Eval test fixtures -- scripted completion backends, fake clock, polling helper."""

import asyncio

import pytest

from magi.agents.personas import DEFAULT_PERSONAS

_PROMPT_TO_PERSONA = {p.system_prompt: p.id for p in DEFAULT_PERSONAS}


def prompt_kind(prompt: str) -> str:
    """Which deliberation phase produced a user prompt."""
    if "Do NOT give a final decision" in prompt:
        return "cross_review"
    if "give your final decision" in prompt:
        return "judgment"
    if "(Keep your reason within" in prompt:
        return "analysis"
    return "raw"


class FakeCouncilClient:
    """
    Completion backend that answers as each persona would, without API calls.

    decisions: persona id -> "APPROVE" / "DENY" (default APPROVE)
    delays:    persona id -> seconds to sleep before answering
    failures:  persona id -> exception raised on every call for that persona
    consensus: dict returned for the consensus call, or an exception to raise
    hold:      asyncio.Event every persona call waits on before answering
    """

    def __init__(self, decisions=None, delays=None, failures=None, consensus=None, hold=None):
        self.decisions = decisions or {}
        self.delays = delays or {}
        self.failures = failures or {}
        self.consensus = consensus if consensus is not None else {
            "summary": "The council approves.",
            "reason": "Most members found the proposal sound.",
            "action": "Proceed with a pilot.",
        }
        self.hold = hold
        self.calls = []
        self.log = []

    def calls_for(self, persona_id, kind=None):
        return [
            messages
            for pid, messages in self.calls
            if pid == persona_id and (kind is None or prompt_kind(messages[-1]["content"]) == kind)
        ]

    async def analyze(self, history, system_instruction):
        persona_id = _PROMPT_TO_PERSONA.get(system_instruction, "consensus")
        messages = [dict(m) for m in history]
        self.calls.append((persona_id, messages))

        if persona_id == "consensus":
            if isinstance(self.consensus, Exception):
                raise self.consensus
            return dict(self.consensus)

        kind = prompt_kind(messages[-1]["content"])
        self.log.append(("start", persona_id, kind))
        if self.hold is not None:
            await self.hold.wait()
        await asyncio.sleep(self.delays.get(persona_id, 0))
        self.log.append(("end", persona_id, kind))

        if persona_id in self.failures:
            raise self.failures[persona_id]
        if kind == "cross_review":
            return {"opinion": f"{persona_id} reacts to the others"}
        decision = self.decisions.get(persona_id, "APPROVE")
        return {"decision": decision, "reason": f"{persona_id} says {decision.lower()}"}


class FakeGatewayBackend:
    """Stand-in for CompletionClient.complete() behind the gateway."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else {"decision": "APPROVE", "reason": "ok"}
        self.error = error
        self.calls = []

    async def complete(self, messages, model=None, reasoning_effort=None):
        self.calls.append({"messages": messages, "model": model, "reasoning_effort": reasoning_effort})
        if self.error is not None:
            raise self.error
        return self.response


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def council_client():
    """Factory: council_client(decisions={...}, delays={...}, ...)."""
    return FakeCouncilClient


@pytest.fixture
def gateway_backend():
    return FakeGatewayBackend


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wait_until():
    """Poll an async condition; fail the test if it never becomes true."""

    async def _wait(predicate, timeout: float = 2.0):
        async def _poll():
            while not predicate():
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout)

    return _wait
