"""
Backend Integrations Package

Шлюзы к внешнему источнику доступности и бронирования
"""

from .base import (
    BaseAvailabilityGateway,
    GatewayError,
    BackendUnavailableError,
    BackendClientError,
    SlotTakenError,
)
from .factory import GatewayFactory, BackendType

__all__ = [
    "BaseAvailabilityGateway",
    "GatewayError",
    "BackendUnavailableError",
    "BackendClientError",
    "SlotTakenError",
    "GatewayFactory",
    "BackendType",
]
