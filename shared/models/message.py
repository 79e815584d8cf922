"""
Message models: входящие события от каналов и исходящие действия
"""

from enum import Enum
from typing import Annotated, Optional, Dict, Any, List, Literal, Union
from pydantic import BaseModel, Field


class Channel(str, Enum):
    """Каналы коммуникации"""
    WHATSAPP = "whatsapp"
    VOICE = "voice"
    TELEGRAM = "telegram"
    WEB = "web"


class InboundEvent(BaseModel):
    """Нормализованное входящее событие от адаптера канала"""

    channel: Channel = Field(..., description="Канал коммуникации")
    user_id: str = Field(..., description="Телефон или другой ID пользователя")
    text: str = Field(default="", description="Текст сообщения")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Исходный payload транспорта")
    message_id: Optional[str] = Field(None, description="ID сообщения транспорта (для дедупликации)")
    timestamp: int = Field(default=0, ge=0, description="Unix timestamp (секунды), 0 если неизвестен")
    meta: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "channel": "whatsapp",
                "user_id": "5215512345678",
                "text": "Quiero reservar padel mañana a las 7",
                "message_id": "wamid.HBgM...",
                "timestamp": 1792183200,
            }
        }


class ListRow(BaseModel):
    """Строка list-сообщения"""
    id: str
    title: str
    description: Optional[str] = None


class ListSection(BaseModel):
    """Секция list-сообщения"""
    title: str
    rows: List[ListRow] = Field(default_factory=list)


class SendText(BaseModel):
    type: Literal["send_text"] = "send_text"
    to: str
    body: str


class SendButtons(BaseModel):
    type: Literal["send_buttons"] = "send_buttons"
    to: str
    body: str
    options: List[str] = Field(default_factory=list)


class SendList(BaseModel):
    type: Literal["send_list"] = "send_list"
    to: str
    body: str
    button_label: str = "Ver horarios"
    sections: List[ListSection] = Field(default_factory=list)


class SendLocation(BaseModel):
    type: Literal["send_location"] = "send_location"
    to: str
    lat: float
    lon: float
    name: str
    address: str


class Escalate(BaseModel):
    type: Literal["escalate"] = "escalate"
    to: str
    reason: str
    body: str = Field(
        default="Dame un momento, te comunico con alguien del equipo.",
        description="Текст для пользователя"
    )


OutboundAction = Annotated[
    Union[SendText, SendButtons, SendList, SendLocation, Escalate],
    Field(discriminator="type"),
]


def render_as_text(action: BaseModel) -> str:
    """
    Текстовое представление действия

    Используется для истории диалога и как fallback при ошибке доставки
    """
    if isinstance(action, SendButtons):
        if not action.options:
            return action.body
        return f"{action.body}\n\n" + "\n".join(f"• {opt}" for opt in action.options)
    if isinstance(action, SendList):
        titles = [row.title for section in action.sections for row in section.rows]
        return f"{action.body}\n\n{', '.join(titles)}" if titles else action.body
    if isinstance(action, SendLocation):
        return f"📍 {action.name}\n{action.address}"
    if isinstance(action, (SendText, Escalate)):
        return action.body
    return ""


class SendResult(BaseModel):
    """Результат отправки исходящего действия"""

    ok: bool
    error: Optional[str] = Field(None, description="missing_to | stale_flow | send_failed")


STALE_FLOW = "stale_flow"
MISSING_TO = "missing_to"
SEND_FAILED = "send_failed"
