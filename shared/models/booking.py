"""
Booking data models - модели доступности и бронирования кортов
"""

import re
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.text import normalize_text

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})")


def normalize_clock(value: Optional[str]) -> Optional[str]:
    """
    Приводит время к виду HH:MM ("7:00" -> "07:00")

    Returns:
        Строку HH:MM или None если формат не распознан
    """
    if not value:
        return None
    match = _TIME_RE.match(str(value).strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


class Slot(BaseModel):
    """Один слот доступности: корт + время начала (часовой)"""

    model_config = ConfigDict(populate_by_name=True)

    court: str = Field(..., alias="Court", description="Корт / ресурс")
    time: str = Field(..., alias="Time", description="Время начала HH:MM")

    @field_validator("court", mode="before")
    @classmethod
    def _court_not_blank(cls, value: Any) -> str:
        text = str(value or "").strip()
        if not text:
            raise ValueError("court is required")
        return text

    @field_validator("time", mode="before")
    @classmethod
    def _time_format(cls, value: Any) -> str:
        normalized = normalize_clock(value)
        if not normalized:
            raise ValueError(f"invalid slot time: {value!r}")
        return normalized


class BookingOption(BaseModel):
    """
    Вычисленный вариант брони

    Время начала, последовательность смежных часовых слотов и корт.
    Никогда не хранится отдельно от кэша сессии.
    """

    start: str = Field(..., description="Время начала HH:MM")
    times: List[str] = Field(..., description="Смежные слоты, len == duration")
    court: str = Field(..., description="Корт")


class UserProfile(BaseModel):
    """Профиль пользователя в бэкенде клуба"""

    found: bool = Field(default=False)
    name: Optional[str] = None
    last_name: Optional[str] = None
    id: Optional[str] = Field(None, description="ID пользователя в бэкенде")


class BookingRequest(BaseModel):
    """Запрос на создание брони"""

    phone: str
    date: str = Field(..., description="Дата YYYY-MM-DD")
    times: List[str]
    court: str
    sport: str
    user_type: str = Field(default="invitado", description="usuario | invitado")
    name: Optional[str] = None
    last_name: Optional[str] = None
    backend_user_id: Optional[str] = None

    def to_payload(self, include_user: bool = True) -> Dict[str, Any]:
        """
        Тело запроса для бэкенда

        Args:
            include_user: Добавлять ли ID пользователя бэкенда (поле "user")
        """
        payload: Dict[str, Any] = {
            "phone": self.phone,
            "date": to_backend_date(self.date),
            "time": list(self.times),
            "court": self.court,
            "sport": self.sport,
            "user_type": self.user_type,
        }
        if self.name:
            payload["name"] = self.name
        if self.last_name:
            payload["last_name"] = self.last_name
        if include_user and self.backend_user_id:
            payload["user"] = self.backend_user_id
        return payload


class ConfirmedBooking(BaseModel):
    """Подтвержденная бронь (неизменяемая запись)"""

    model_config = ConfigDict(frozen=True)

    sport: str
    date: str
    time: str
    name: str
    last_name: Optional[str] = None
    confirmed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = Field(default="confirmed")

    @property
    def key(self) -> Tuple[str, str, str, str, str]:
        """Ключ идентичности: (sport, date, time, name, last_name)"""
        return (
            self.sport,
            self.date,
            self.time,
            normalize_text(self.name).strip(),
            normalize_text(self.last_name).strip(),
        )


def merge_bookings(
    existing: List[ConfirmedBooking],
    new: List[ConfirmedBooking],
    cap: int = 20
) -> List[ConfirmedBooking]:
    """
    Слияние двух списков броней

    Дедупликация по ключу, остается самая свежая запись,
    результат отсортирован по времени подтверждения и обрезан до cap.
    """
    latest: Dict[Tuple[str, str, str, str, str], ConfirmedBooking] = {}
    for booking in [*existing, *new]:
        current = latest.get(booking.key)
        if current is None or booking.confirmed_at >= current.confirmed_at:
            latest[booking.key] = booking

    merged = sorted(latest.values(), key=lambda b: b.confirmed_at)
    if cap > 0:
        merged = merged[-cap:]
    return merged


def to_backend_date(value: str) -> str:
    """Дата без времени превращается в полночь UTC ("2026-10-17" -> "2026-10-17T00:00:00Z")"""
    if "T" in value:
        return value
    return f"{value}T00:00:00Z"
