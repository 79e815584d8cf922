"""
Storage layer: сессии, дедупликация и flow-токены
"""

from .redis_storage import SessionStore
from .guards import MessageDedupGuard, FlowTokenGuard

__all__ = [
    "SessionStore",
    "MessageDedupGuard",
    "FlowTokenGuard",
]
