"""
Judge agents and the personas they are bound to.

- agent.py: Agent state (persona reference, history, enablement, last verdict)
- personas.py: Persona catalog with the default council seats
"""

from .agent import Agent, create_agents
from .personas import DEFAULT_PERSONAS, DEFAULT_SEATS, Persona, PersonaCatalog
