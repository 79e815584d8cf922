"""
Pytest configuration and fixtures
"""

import itertools
import os
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from backend_integrations.src.base import BaseAvailabilityGateway  # noqa: E402
from booking_agent.src.config import Settings  # noqa: E402
from booking_agent.src.core.context import AgentContext  # noqa: E402
from booking_agent.src.core.orchestrator import Orchestrator  # noqa: E402
from shared.models.booking import BookingRequest, Slot, UserProfile  # noqa: E402
from shared.models.message import Channel, InboundEvent  # noqa: E402

PHONE = "5215512345678"
USER_ID = "5512345678"

# 2026-10-16 10:00 America/Mexico_City (UTC-6)
FIXED_NOW = datetime(2026, 10, 16, 16, 0, tzinfo=timezone.utc)


class InMemoryRedis:
    """Минимальный async Redis в памяти (decode_responses=True)"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.closed = False

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value, ex: Optional[int] = None, nx: bool = False):
        if nx and key in self.data:
            return None
        self.data[key] = str(value)
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def setex(self, key: str, ttl: int, value) -> bool:
        self.data[key] = str(value)
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def expire(self, key: str, ttl: int) -> bool:
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self):
        self.closed = True


class FakeGateway(BaseAvailabilityGateway):
    """Шлюз в памяти с записью вызовов"""

    def __init__(self, profile: Optional[UserProfile] = None, slots: Optional[List[Slot]] = None):
        super().__init__(base_url="https://club.test")
        self.profile = profile or UserProfile(found=False)
        self.slots = list(slots or [])
        self.booking_errors: List[Exception] = []
        self.slot_errors: List[Exception] = []
        self.user_calls: List[str] = []
        self.slot_calls: List[tuple] = []
        self.bookings: List[BookingRequest] = []
        self.on_get_slots = None

    async def get_user(self, phone: str) -> UserProfile:
        self.user_calls.append(phone)
        return self.profile

    async def get_available_slots(self, sport: str, date_str: str, current_hour: int = 0) -> List[Slot]:
        self.slot_calls.append((sport, date_str, current_hour))
        if self.on_get_slots is not None:
            await self.on_get_slots()
        if self.slot_errors:
            raise self.slot_errors.pop(0)
        return list(self.slots)

    async def create_booking(self, request: BookingRequest) -> dict:
        self.bookings.append(request)
        if self.booking_errors:
            raise self.booking_errors.pop(0)
        return {"status": "success"}

    def get_backend_name(self) -> str:
        return "Fake"


def make_slots(*pairs) -> List[Slot]:
    """make_slots(("Cancha 1", "14:00"), ...)"""
    return [Slot(court=court, time=time) for court, time in pairs]


@pytest.fixture
def settings():
    """Settings без .env и без LLM"""
    return Settings(
        _env_file=None,
        backend_base_url="https://club.test",
        gemini_api_key=None,
        interpreter_backend="rules",
        whatsapp_verify_token="verify-me",
    )


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def gateway():
    return FakeGateway(
        profile=UserProfile(found=True, name="Ana", last_name="López", id="u-1"),
        slots=make_slots(("Cancha 1", "14:00"), ("Cancha 2", "15:00")),
    )


@pytest.fixture
def context(settings, fake_redis, gateway):
    return AgentContext.create(settings, redis=fake_redis, gateway=gateway, clock=lambda: FIXED_NOW)


@pytest.fixture
def orchestrator(context):
    return Orchestrator(context)


@pytest.fixture
def make_event():
    """Фабрика входящих событий с уникальными message_id и растущим timestamp"""
    counter = itertools.count(1)

    def _make(text: str, message_id: Optional[str] = None, timestamp: Optional[int] = None, **kwargs):
        n = next(counter)
        return InboundEvent(
            channel=kwargs.pop("channel", Channel.WHATSAPP),
            user_id=kwargs.pop("user_id", PHONE),
            text=text,
            message_id=message_id or f"wamid.{n}",
            timestamp=timestamp if timestamp is not None else 1_792_180_000 + n,
            **kwargs
        )

    return _make


@pytest.fixture
def mock_redis(mocker):
    """Mock Redis client"""
    mock = mocker.MagicMock()
    mock.get = mocker.AsyncMock(return_value=None)
    mock.set = mocker.AsyncMock(return_value=True)
    mock.setex = mocker.AsyncMock(return_value=True)
    mock.delete = mocker.AsyncMock(return_value=1)
    mock.ping = mocker.AsyncMock(return_value=True)
    mock.aclose = mocker.AsyncMock()
    return mock
