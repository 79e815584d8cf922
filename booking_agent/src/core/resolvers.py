"""
Time/Text resolvers

Чистые функции: превращают фрагменты естественного языка (испанский)
в нормализованные значения. Без состояния и без I/O. На нераспознанный
ввод возвращают None и никогда не бросают исключений.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, Tuple

from dateutil import tz
from dateutil.relativedelta import relativedelta

from shared.utils.text import normalize_text, strip_punctuation

WEEKDAY_INDEX = {
    "lunes": 0,
    "martes": 1,
    "miercoles": 2,
    "jueves": 3,
    "viernes": 4,
    "sabado": 5,
    "domingo": 6,
}

MONTH_INDEX = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "setiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

SPANISH_NUMBERS = {
    "un": 1,
    "uno": 1,
    "una": 1,
    "dos": 2,
    "tres": 3,
    "cuatro": 4,
    "cinco": 5,
    "seis": 6,
    "siete": 7,
    "ocho": 8,
    "nueve": 9,
    "diez": 10,
    "once": 11,
    "doce": 12,
}

_NUMBER = r"(\d{1,2}|" + "|".join(sorted(SPANISH_NUMBERS, key=len, reverse=True)) + r")"
_MONTHS = "|".join(MONTH_INDEX)
_WEEKDAYS = "|".join(WEEKDAY_INDEX)

_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_DAY_MONTH_RE = re.compile(rf"\b(\d{{1,2}})\s+de\s+({_MONTHS})(?:\s+(?:de|del)\s+(\d{{4}}))?\b")
_SLASH_DATE_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b")
_AFTER_TOMORROW_RE = re.compile(r"\bpasado\s+manana\b")
_TOMORROW_RE = re.compile(r"(?<!la )\bmanana\b")
_TODAY_RE = re.compile(r"\bhoy\b")
_IN_DAYS_RE = re.compile(rf"\b(?:en|dentro\s+de)\s+{_NUMBER}\s+dias?\b")
_WEEKDAY_RE = re.compile(
    rf"\b(?:(proximo|siguiente)\s+)?({_WEEKDAYS})\b(\s+(?:que\s+viene|proximo|siguiente))?"
)

_CLOCK_RE = re.compile(r"\b(\d{1,2}):(\d{2})\s*(am|pm|a\.\s?m\.?|p\.\s?m\.?)?")
_AMPM_RE = re.compile(r"\b(\d{1,2})\s*(am|pm|a\.\s?m\.?|p\.\s?m\.?)(?![a-z])")
_AT_HOUR_RE = re.compile(
    rf"\b(?:a\s+las|a\s+la|las|tipo|como\s+a\s+las)\s+{_NUMBER}(\s+y\s+media)?"
    r"(?:\s+de\s+la\s+(manana|tarde|noche))?\b"
)
_HOUR_PERIOD_RE = re.compile(r"\b(\d{1,2})\s+de\s+la\s+(manana|tarde|noche)\b")
_HOURS_SUFFIX_RE = re.compile(r"^(\d{1,2})\s*(?:h|hr|hrs)$")
_BARE_HOUR_RE = re.compile(r"^(?:a\s*las\s*)?(\d{1,2})$")
_NOON_RE = re.compile(r"\b(mediodia|medio\s+dia)\b")
_AMBIGUITY_MARKERS_RE = re.compile(
    r"(?:\b|(?<=\d))(?:am|pm|a\.\s?m|p\.\s?m)\b|\b(?:manana|noche|tarde|mediodia|medio\s*dia)\b"
)

_DURATION_RE = re.compile(rf"\b{_NUMBER}\s+horas?\b")

_NAME_INTRO_RE = re.compile(
    r"\b(?:me\s+llamo|mi\s+nombre\s+es|soy|a\s+nombre\s+de)\s+"
    r"([a-záéíóúüñ]+(?:\s+[a-záéíóúüñ]+){0,2})",
    re.IGNORECASE,
)
_NAME_TOKEN_RE = re.compile(r"^[a-záéíóúüñ]{2,}$", re.IGNORECASE)
_NAME_STOPWORDS = {
    "hola", "buenas", "buenos", "si", "sí", "no", "ok", "gracias", "quiero", "reservar",
    "padel", "pickleball", "golf", "hoy", "manana", "mañana", "para", "de", "el", "la",
    "cliente", "nuevo", "nueva", "socio", "usuario", "confirmar", "cancelar", "reset",
    "y", "e", "a", "en", "por", "con", "del", "las", "los", "porfa", "favor",
}


@dataclass(frozen=True)
class DurationResult:
    """Результат разбора длительности"""
    hours: int
    requested: int
    was_clamped: bool


def local_now(timezone_name: str, now: Optional[datetime] = None) -> datetime:
    """
    Текущее время в таймзоне клуба

    Args:
        timezone_name: IANA таймзона (например, "America/Mexico_City")
        now: Точка отсчета (aware datetime); по умолчанию - сейчас
    """
    zone = tz.gettz(timezone_name) or tz.UTC
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz.UTC)
    return now.astimezone(zone)


def _number(token: str) -> Optional[int]:
    if token.isdigit():
        return int(token)
    return SPANISH_NUMBERS.get(token)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def resolve_date(text: str, today: date) -> Optional[str]:
    """
    Разбор даты: hoy, mañana, pasado mañana, "en N días", "15 de marzo [de 2027]",
    15/03[/2027], ISO и дни недели (с "próximo" / "que viene")

    Args:
        text: Свободный текст пользователя
        today: Текущая дата в таймзоне клуба

    Returns:
        Дата YYYY-MM-DD или None
    """
    t = normalize_text(text)
    if not t:
        return None

    match = _ISO_DATE_RE.search(t)
    if match:
        resolved = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        return resolved.isoformat() if resolved else None

    match = _DAY_MONTH_RE.search(t)
    if match:
        day, month = int(match.group(1)), MONTH_INDEX[match.group(2)]
        if match.group(3):
            resolved = _safe_date(int(match.group(3)), month, day)
        else:
            resolved = _safe_date(today.year, month, day)
            if resolved and resolved < today:
                resolved = _safe_date(today.year + 1, month, day)
        return resolved.isoformat() if resolved else None

    match = _SLASH_DATE_RE.search(t)
    if match:
        day, month = int(match.group(1)), int(match.group(2))
        year_raw = match.group(3)
        if year_raw:
            year = int(year_raw)
            if year < 100:
                year += 2000
            resolved = _safe_date(year, month, day)
        else:
            resolved = _safe_date(today.year, month, day)
            if resolved and resolved < today:
                resolved = _safe_date(today.year + 1, month, day)
        return resolved.isoformat() if resolved else None

    if _AFTER_TOMORROW_RE.search(t):
        return (today + relativedelta(days=2)).isoformat()
    if _TOMORROW_RE.search(t):
        return (today + relativedelta(days=1)).isoformat()
    if _TODAY_RE.search(t):
        return today.isoformat()

    match = _IN_DAYS_RE.search(t)
    if match:
        days = _number(match.group(1))
        if days is not None:
            return (today + relativedelta(days=days)).isoformat()

    match = _WEEKDAY_RE.search(t)
    if match:
        target = WEEKDAY_INDEX[match.group(2)]
        delta = (target - today.weekday()) % 7
        wants_next = bool(match.group(1) or match.group(3))
        if wants_next and delta == 0:
            delta = 7
        return (today + relativedelta(days=delta)).isoformat()

    return None


def _strip_non_time_numbers(t: str) -> str:
    """Убирает даты и длительности, чтобы их числа не читались как время"""
    t = _ISO_DATE_RE.sub(" ", t)
    t = _DAY_MONTH_RE.sub(" ", t)
    t = _SLASH_DATE_RE.sub(" ", t)
    t = _IN_DAYS_RE.sub(" ", t)
    t = _DURATION_RE.sub(" ", t)
    return re.sub(r"\s+", " ", t).strip()


def _apply_period(hour: int, period: Optional[str]) -> Optional[int]:
    if period:
        period = period.replace(".", "").replace(" ", "")
    if period in ("pm", "tarde", "noche") and hour < 12:
        hour += 12
    elif period in ("am", "manana", "noche") and hour == 12:
        hour = 0
    if hour < 0 or hour > 23:
        return None
    return hour


def resolve_time(text: str) -> Optional[str]:
    """
    Разбор времени: "19:30", "7pm", "a las 7", "7 de la tarde", "mediodía",
    или сообщение из одного числа ("18")

    Returns:
        Время HH:MM или None
    """
    t = _strip_non_time_numbers(normalize_text(text))
    if not t:
        return None

    match = _CLOCK_RE.search(t)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        hour = _apply_period(hour, match.group(3))
        if hour is None or minute > 59:
            return None
        return f"{hour:02d}:{minute:02d}"

    match = _AMPM_RE.search(t)
    if match:
        hour = _apply_period(int(match.group(1)), match.group(2))
        return f"{hour:02d}:00" if hour is not None else None

    match = _AT_HOUR_RE.search(t)
    if match:
        hour = _number(match.group(1))
        if hour is None:
            return None
        hour = _apply_period(hour, match.group(3))
        if hour is None:
            return None
        minute = 30 if match.group(2) else 0
        return f"{hour:02d}:{minute:02d}"

    match = _HOUR_PERIOD_RE.search(t)
    if match:
        hour = _apply_period(int(match.group(1)), match.group(2))
        return f"{hour:02d}:00" if hour is not None else None

    if _NOON_RE.search(t):
        return "12:00"

    bare = strip_punctuation(t)
    match = _HOURS_SUFFIX_RE.match(bare) or _BARE_HOUR_RE.match(bare)
    if match:
        hour = int(match.group(1))
        if hour <= 23:
            return f"{hour:02d}:00"

    return None


def is_ambiguous_time(text: str, resolved: Optional[str]) -> bool:
    """
    Время названо часом 1-12 без ":" и без указания части суток
    ("mañana a las 7" - может быть и 07:00, и 19:00)
    """
    hour = hour_of(resolved)
    if hour is None or not 1 <= hour <= 12 or not resolved.endswith(":00"):
        return False
    t = _strip_non_time_numbers(normalize_text(text))
    if ":" in t:
        return False
    t = _TOMORROW_RE.sub(" ", _AFTER_TOMORROW_RE.sub(" ", t))
    return not _AMBIGUITY_MARKERS_RE.search(t)


def infer_ambiguous_time(hour: int, is_today: bool, now_hour: int) -> Optional[str]:
    """
    Для сегодняшней даты уже прошедший час переносится на вечер (+12)

    Returns:
        Время HH:00 или None, если контекст не "сегодня"
    """
    if not is_today:
        return None
    assumed = hour
    if hour < now_hour and hour + 12 <= 23:
        assumed = hour + 12
    return f"{assumed:02d}:00"


def resolve_duration(text: str, max_duration: int = 3) -> Optional[DurationResult]:
    """
    Длительность в часах из цифр или испанских числительных ("2 horas", "dos horas")

    Значения больше max_duration обрезаются до максимума с флагом was_clamped,
    вызывающий код обязан сообщить об этом пользователю.
    """
    t = normalize_text(text)
    if not t:
        return None
    match = _DURATION_RE.search(t)
    if not match:
        return None
    requested = _number(match.group(1))
    if requested is None or requested < 1:
        return None
    if requested > max_duration:
        return DurationResult(hours=max_duration, requested=requested, was_clamped=True)
    return DurationResult(hours=requested, requested=requested, was_clamped=False)


def resolve_sport(text: str, sports: Iterable[Tuple[str, List[str]]]) -> Optional[str]:
    """
    Вид спорта по ключевым словам

    Args:
        text: Текст пользователя
        sports: Пары (название, ключевые слова) в порядке приоритета
    """
    t = normalize_text(text)
    if not t:
        return None
    for name, keywords in sports:
        for keyword in keywords:
            if normalize_text(keyword) in t:
                return name
    return None


def _title(words: List[str]) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def _split_name(words: List[str]) -> Tuple[Optional[str], Optional[str]]:
    kept = []
    for word in words:
        if word.lower() in _NAME_STOPWORDS or len(word) < 2:
            break
        kept.append(word)
    words = kept
    if not words:
        return None, None
    first = _title(words[:1])
    last = _title(words[1:]) if len(words) > 1 else None
    return first, last


def resolve_name(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Имя из фраз "me llamo ...", "mi nombre es ...", "soy ...", "a nombre de ..."

    Returns:
        (имя, фамилия) - оба None если имя не найдено
    """
    match = _NAME_INTRO_RE.search(text or "")
    if not match:
        return None, None
    return _split_name(match.group(1).split())


def parse_bare_name(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Ответ на вопрос "¿A nombre de quién?" - одно-три слова без цифр

    Returns:
        (имя, фамилия) - оба None если текст не похож на имя
    """
    intro_first, intro_last = resolve_name(text)
    if intro_first:
        return intro_first, intro_last
    cleaned = re.sub(r"[!?.,;:¡¿]", " ", text or "").split()
    if not 1 <= len(cleaned) <= 3:
        return None, None
    if not all(_NAME_TOKEN_RE.match(word) for word in cleaned):
        return None, None
    return _split_name(cleaned)


def hour_of(time_str: Optional[str]) -> Optional[int]:
    """Час из строки HH:MM"""
    if not time_str:
        return None
    match = re.match(r"^(\d{1,2}):", time_str)
    return int(match.group(1)) if match else None
