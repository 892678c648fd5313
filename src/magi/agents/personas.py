"""
Persona catalog -- named roles that supply an agent's system instruction.

Personas are referenced by id from each Agent and resolved here; the
catalog does not own agents and agents never copy the prompt text.

The three default seats are scientist, mother and woman. The remaining
personas are available for manual or random assignment.
"""

import logging
import random
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

RESPONSE_CONTRACT = (
    "Always answer with a JSON object of the form "
    '{"decision": "APPROVE" | "DENY", "reason": "..."} '
    "unless the user message asks for a different JSON shape."
)


@dataclass(frozen=True)
class Persona:
    """A named role definition."""

    id: str
    name: str
    system_prompt: str


def _persona(persona_id: str, name: str, role: str) -> Persona:
    return Persona(
        id=persona_id,
        name=name,
        system_prompt=(
            f"You are {role}, one member of a three-seat deliberation council. "
            f"Judge every proposal strictly from that standpoint.\n\n{RESPONSE_CONTRACT}"
        ),
    )


DEFAULT_PERSONAS: tuple[Persona, ...] = (
    _persona(
        "scientist",
        "Scientist",
        "a scientist who weighs evidence, feasibility and measurable outcomes",
    ),
    _persona(
        "mother",
        "Mother",
        "a mother who weighs safety, care and the long-term wellbeing of the people affected",
    ),
    _persona(
        "woman",
        "Woman",
        "a woman who weighs intuition, personal values and how the decision feels to live with",
    ),
    _persona(
        "lawyer",
        "Lawyer",
        "a lawyer who weighs legality, liability and precedent",
    ),
    _persona(
        "engineer",
        "Engineer",
        "an engineer who weighs cost, reliability and how the thing would actually be built",
    ),
    _persona(
        "philosopher",
        "Philosopher",
        "a philosopher who weighs ethics, fairness and the principles at stake",
    ),
)

DEFAULT_SEATS = ("scientist", "mother", "woman")


class PersonaCatalog:
    """Read-only lookup of personas by id."""

    def __init__(self, personas: Iterable[Persona] = DEFAULT_PERSONAS):
        self._personas: dict[str, Persona] = {}
        for persona in personas:
            if persona.id in self._personas:
                raise ValueError(f"Duplicate persona id: {persona.id}")
            self._personas[persona.id] = persona

    def __contains__(self, persona_id: object) -> bool:
        return persona_id in self._personas

    def __len__(self) -> int:
        return len(self._personas)

    def get(self, persona_id: str) -> Persona:
        try:
            return self._personas[persona_id]
        except KeyError:
            raise KeyError(f"Unknown persona: {persona_id}") from None

    def all(self) -> list[Persona]:
        return list(self._personas.values())

    def random_assignment(self, count: int, rng: random.Random | None = None) -> list[Persona]:
        """Pick `count` personas, unique while the catalog has enough of them."""
        if count <= 0:
            return []
        rng = rng or random.Random()
        shuffled = self.all()
        rng.shuffle(shuffled)
        return [shuffled[i % len(shuffled)] for i in range(count)]
