"""
Session models для управления состоянием диалогов

Сессия - единственный изменяемый ресурс диалога. Хранится в Redis с TTL,
версионирована (schema_version) и мигрирует старый формат при загрузке.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, ConfigDict, Field

from .booking import BookingOption, Slot, UserProfile

SESSION_SCHEMA_VERSION = 2


class SessionState(str, Enum):
    """Концептуальные состояния диалога (вычисляются из полей сессии)"""
    EMPTY_DRAFT = "empty-draft"
    COLLECTING_SPORT = "collecting-sport"
    COLLECTING_DATE = "collecting-date"
    COLLECTING_TIME = "collecting-time"
    OPTIONS_OFFERED = "options-offered"
    AWAITING_NAME = "awaiting-name"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    COMPLETED = "completed"


class WaitingFor(str, Enum):
    """Какое поле оркестратор сейчас ждет от пользователя"""
    SPORT = "sport"
    DATE = "date"
    TIME = "time"
    NAME = "name"
    CONFIRMATION = "confirmation"


class BookingDraft(BaseModel):
    """Черновик брони"""
    sport: Optional[str] = None
    date: Optional[str] = Field(None, description="YYYY-MM-DD")
    time: Optional[str] = Field(None, description="HH:MM")
    time_is_ambiguous: bool = False
    duration: int = Field(default=1, ge=1)
    court: Optional[str] = None
    name: Optional[str] = None
    last_name: Optional[str] = None

    def is_empty(self) -> bool:
        return not any([self.sport, self.date, self.time, self.name])


class KnownUser(BaseModel):
    """Что известно о пользователе из бэкенда"""
    checked: bool = False
    found: bool = False
    name: Optional[str] = None
    last_name: Optional[str] = None
    backend_id: Optional[str] = None

    def apply_profile(self, profile: UserProfile):
        self.checked = True
        self.found = profile.found
        self.name = profile.name or self.name
        self.last_name = profile.last_name or self.last_name
        self.backend_id = profile.id or self.backend_id


class AvailabilityCache(BaseModel):
    """Кэш доступности: сырые слоты, варианты и список времени начала"""
    fetched: bool = False
    slots: List[Slot] = Field(default_factory=list)
    options: List[BookingOption] = Field(default_factory=list)
    hours: List[str] = Field(default_factory=list)

    def invalidate(self):
        self.fetched = False
        self.slots = []
        self.options = []
        self.hours = []


class PendingConfirmation(BaseModel):
    """Кандидат на бронь, ожидающий явного да/нет"""
    sport: str
    date: str
    start: str
    times: List[str]
    court: str
    duration: int = 1
    name: str
    last_name: Optional[str] = None


class TranscriptTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class Session(BaseModel):
    """Модель сессии диалога с пользователем"""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = Field(default=SESSION_SCHEMA_VERSION)

    user_id: str = Field(..., description="Телефон пользователя (10 цифр)")
    channel: str = Field(default="whatsapp", description="Канал коммуникации")

    draft: BookingDraft = Field(default_factory=BookingDraft)
    user: KnownUser = Field(default_factory=KnownUser)
    availability: AvailabilityCache = Field(default_factory=AvailabilityCache)

    # История (только контекст для интерпретатора, не источник истины)
    transcript: List[TranscriptTurn] = Field(default_factory=list)

    waiting_for: Optional[WaitingFor] = None
    last_ts: int = Field(default=0, description="Водяной знак времени последнего принятого сообщения")
    pending: Optional[PendingConfirmation] = None
    booking_failures: int = Field(default=0)
    completed: bool = Field(default=False, description="Последняя бронь успешно подтверждена")

    # Метаданные
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # TTL для Redis (в секундах) - 30 минут простоя
    ttl: int = Field(default=1800, description="Time to live в секундах")

    @property
    def state(self) -> SessionState:
        """Текущее концептуальное состояние"""
        if self.pending:
            return SessionState.AWAITING_CONFIRMATION
        if self.waiting_for == WaitingFor.NAME:
            return SessionState.AWAITING_NAME
        if self.draft.is_empty():
            return SessionState.COMPLETED if self.completed else SessionState.EMPTY_DRAFT
        if not self.draft.sport:
            return SessionState.COLLECTING_SPORT
        if not self.draft.date:
            return SessionState.COLLECTING_DATE
        if self.availability.options and not self.draft.time:
            return SessionState.OPTIONS_OFFERED
        return SessionState.COLLECTING_TIME

    @property
    def display_name(self) -> Optional[str]:
        return self.draft.name or self.user.name

    @property
    def display_last_name(self) -> Optional[str]:
        if self.draft.name:
            return self.draft.last_name
        return self.user.last_name

    def set_sport(self, sport: str):
        """Смена спорта инвалидирует кэш доступности"""
        if sport == self.draft.sport:
            return
        self.draft.sport = sport
        self._invalidate_selection()

    def set_date(self, date_str: str):
        """Смена даты инвалидирует кэш доступности"""
        if date_str == self.draft.date:
            return
        self.draft.date = date_str
        self._invalidate_selection()

    def _invalidate_selection(self):
        self.availability.invalidate()
        self.draft.court = None
        self.pending = None

    def remember_turn(self, role: str, content: str, window: int = 12):
        """Добавить реплику в ограниченную историю"""
        if not content:
            return
        self.transcript.append(TranscriptTurn(role=role, content=content))
        if window > 0 and len(self.transcript) > window:
            self.transcript = self.transcript[-window:]

    def clear_draft(self):
        """Очистка черновика после успешной брони (личность пользователя сохраняется)"""
        self.draft = BookingDraft()
        self.availability.invalidate()
        self.pending = None
        self.waiting_for = None
        self.booking_failures = 0

    def touch(self):
        self.updated_at = datetime.now(timezone.utc)


def migrate_session_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Миграция сохраненной сессии к текущей версии схемы

    Схема 1 - плоский JSON-блоб (bookingDraft, lastTs, userChecked, ...).

    Args:
        data: Загруженный из Redis словарь

    Returns:
        Словарь в формате текущей схемы
    """
    version = data.get("schema_version", 1)
    if version >= SESSION_SCHEMA_VERSION:
        return data

    legacy_draft = data.get("bookingDraft") or {}
    legacy_user = data.get("user") or {}

    transcript = []
    for message in data.get("messages") or []:
        role = message.get("role")
        content = message.get("content")
        if role in ("user", "assistant") and isinstance(content, str) and content:
            transcript.append({"role": role, "content": content})

    availability: Dict[str, Any] = {}
    if data.get("slots") is not None or data.get("options"):
        availability = {
            "fetched": True,
            "slots": data.get("slots") or [],
            "options": data.get("options") or [],
            "hours": data.get("hours") or [],
        }

    return {
        "schema_version": SESSION_SCHEMA_VERSION,
        "user_id": data.get("user_id") or data.get("phone") or "",
        "channel": data.get("channel") or "whatsapp",
        "draft": {
            "sport": legacy_draft.get("sport") or data.get("sport"),
            "date": legacy_draft.get("date") or data.get("date"),
            "time": legacy_draft.get("time") or data.get("desiredTime"),
            "duration": legacy_draft.get("duration") or data.get("duration") or 1,
            "name": legacy_draft.get("name"),
            "last_name": legacy_draft.get("lastName"),
        },
        "user": {
            "checked": bool(data.get("userChecked")),
            "found": bool(legacy_user.get("found")),
            "name": legacy_user.get("name"),
            "last_name": legacy_user.get("last_name") or data.get("userLastName"),
            "backend_id": legacy_user.get("id"),
        },
        "availability": availability,
        "transcript": transcript,
        "last_ts": int(data.get("lastTs") or 0),
    }
