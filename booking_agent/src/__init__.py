"""
Booking Agent Package
"""

from .core.orchestrator import Orchestrator, TurnOutcome
from .core.context import AgentContext
from .services.interpreter import create_interpreter
from .storage.redis_storage import SessionStore
from .config import settings

__all__ = [
    "Orchestrator",
    "TurnOutcome",
    "AgentContext",
    "create_interpreter",
    "SessionStore",
    "settings",
]
