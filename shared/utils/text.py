"""
Текстовые утилиты: нормализация текста и телефонов
"""

import re
import unicodedata
from typing import Optional

_PUNCTUATION_RE = re.compile(r"[!?.,;:¡¿]")
_SPACES_RE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """
    Нижний регистр + удаление диакритики ("Mañana" -> "manana")

    Args:
        text: Исходный текст (может быть None)

    Returns:
        Нормализованный текст
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def strip_punctuation(text: Optional[str]) -> str:
    """Нормализует текст и убирает пунктуацию и лишние пробелы"""
    cleaned = _PUNCTUATION_RE.sub(" ", normalize_text(text))
    return _SPACES_RE.sub(" ", cleaned).strip()


def normalize_phone(phone: Optional[str]) -> str:
    """Оставляет только цифры, не больше последних 10"""
    digits = "".join(filter(str.isdigit, phone or ""))
    if len(digits) <= 10:
        return digits
    return digits[-10:]


def mask_phone(phone: Optional[str]) -> str:
    """Последние 4 цифры телефона для логов"""
    return (phone or "")[-4:]
