"""
Быстрый детерминированный pre-pass и оценка уверенности решений
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from shared.utils.text import normalize_text, strip_punctuation

_RESET_WORDS = {"reset"}

_GREETING_RE = re.compile(r"\b(hola|buenas|buenos\s+dias|buenas\s+tardes|buenas\s+noches|hey|que\s+tal)\b")
_BOOKING_INTENT_RE = re.compile(
    r"\b(reservar|reserva|resev|resevar|reserbar|agendar|agenda|apart(?:ar)?|cancha|horario|jugar|juego|jugara)\b"
)
_YES_RE = re.compile(r"\b(si|ok|vale|confirmo|confirmar|de\s+acuerdo|adelante|por\s+favor|porfa)\b")
_NO_RE = re.compile(r"\b(no|cancelar|mejor\s+no|todavia\s+no)\b")
_OTHER_TIMES_RE = re.compile(
    r"\b(otra\s+hora|otras\s+horas|que\s+otra|opciones|alternativas|diferente|mas\s+tarde|mas\s+temprano)\b"
)
_AVAILABILITY_RE = re.compile(r"\b(horarios|disponibilidad|disponible|espacios|que\s+horarios)\b")
_INFO_RE = re.compile(
    r"\b(que\s+pasa|llego\s+tarde|llegar\s+tarde|se\s+me\s+hace\s+tarde|politica|regla|cancel|reagend|"
    r"reembolso|devolucion|precio|precios|costo|tarifa|ubicacion|direccion|estacionamiento|clases|"
    r"torneos|renta|rentar)\b"
)
_LOCATION_RE = re.compile(r"\b(ubicacion|direccion|donde|mapa)\b")
_NAME_QUESTION_RE = re.compile(r"\b(como\s+te\s+llamas|cual\s+es\s+tu\s+nombre|quien\s+eres)\b")
_LATE_RE = re.compile(r"\b(llego\s+tarde|llegar\s+tarde|se\s+me\s+hace\s+tarde|voy\s+a\s+llegar\s+tarde)\b")
_OPENING_HOURS_RE = re.compile(r"\b(a\s+que\s+hora\s+(?:abren|cierran)|horario\s+del\s+club|abren|cierran)\b")
_PRICE_RE = re.compile(r"\b(precio|precios|costo|cuesta|tarifa)\b")


@dataclass(frozen=True)
class Signals:
    """Детерминированные сигналы одного сообщения"""
    reset: bool = False
    greeting: bool = False
    courtesy_only: bool = False
    yes: bool = False
    no: bool = False
    booking_intent: bool = False
    wants_other_times: bool = False
    wants_availability: bool = False
    info_question: bool = False
    location_question: bool = False
    late_question: bool = False
    name_question: bool = False
    opening_hours_question: bool = False
    price_question: bool = False

    @property
    def is_canned_info(self) -> bool:
        return any([
            self.location_question,
            self.late_question,
            self.name_question,
            self.opening_hours_question,
            self.price_question,
        ])


def is_reset(text: str) -> bool:
    """Буквальная команда "reset" (без учета регистра и пунктуации)"""
    return strip_punctuation(text) in _RESET_WORDS


def is_courtesy_only(text: str, courtesy_phrases: Iterable[str]) -> bool:
    """Сообщение целиком состоит из фразы вежливости ("gracias", "perfecto!")"""
    normalized = strip_punctuation(text)
    if not normalized:
        return False
    return normalized in {strip_punctuation(p) for p in courtesy_phrases}


def classify(text: str, courtesy_phrases: Iterable[str] = ()) -> Signals:
    """
    Классификация сообщения регулярными выражениями

    Args:
        text: Текст пользователя
        courtesy_phrases: Фразы вежливости из настроек

    Returns:
        Signals
    """
    t = normalize_text(text)
    return Signals(
        reset=is_reset(text),
        greeting=bool(_GREETING_RE.search(t)),
        courtesy_only=is_courtesy_only(text, courtesy_phrases),
        yes=bool(_YES_RE.search(t)),
        no=bool(_NO_RE.search(t)),
        booking_intent=bool(_BOOKING_INTENT_RE.search(t)),
        wants_other_times=bool(_OTHER_TIMES_RE.search(t)),
        wants_availability=bool(_AVAILABILITY_RE.search(t)),
        info_question=bool(_INFO_RE.search(t)),
        location_question=bool(_LOCATION_RE.search(t)),
        late_question=bool(_LATE_RE.search(t)),
        name_question=bool(_NAME_QUESTION_RE.search(t)),
        opening_hours_question=bool(_OPENING_HOURS_RE.search(t)),
        price_question=bool(_PRICE_RE.search(t)),
    )


class DecisionKind(str, Enum):
    """Тип решения оркестратора (для оценки уверенности)"""
    CONFIRM = "confirm"
    OFFER_OPTIONS = "offer_options"
    SEND_LOCATION = "send_location"
    PROFILE_LOOKUP = "profile_lookup"
    ASK = "ask"
    REPLY = "reply"
    OTHER = "other"


def contains_escalation_keyword(text: str, keywords: Iterable[str]) -> bool:
    """Ответ содержит фразу-маркер "нужно уточнить у человека" """
    t = normalize_text(text)
    return any(normalize_text(k) in t for k in keywords if k)


def compute_confidence(
    kind: DecisionKind,
    intent: Optional[str] = None,
    has_date: bool = False,
    has_sport: bool = False,
    reply_text: Optional[str] = None,
    escalation_keywords: Iterable[str] = ()
) -> float:
    """
    Уверенность решения по фиксированной таблице

    Args:
        kind: Тип решения
        intent: Интент интерпретации (book / info / other)
        has_date: Известна ли дата (в черновике или в интерпретации)
        has_sport: Известен ли спорт
        reply_text: Текст свободного ответа (проверяется на маркеры эскалации)
        escalation_keywords: Маркеры эскалации

    Returns:
        Число от 0 до 1
    """
    if kind == DecisionKind.REPLY and reply_text and contains_escalation_keyword(reply_text, escalation_keywords):
        return 0.0
    if kind == DecisionKind.CONFIRM:
        return 0.95
    if kind in (DecisionKind.OFFER_OPTIONS, DecisionKind.SEND_LOCATION):
        return 0.9
    if kind == DecisionKind.PROFILE_LOOKUP:
        return 0.85
    if intent == "book":
        if has_date and has_sport:
            return 0.85
        if has_date or has_sport:
            return 0.6
        return 0.5
    if kind == DecisionKind.ASK:
        return 0.65
    if kind == DecisionKind.REPLY:
        return 0.5
    return 0.4
