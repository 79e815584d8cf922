"""
Interpreter - извлечение интента и сущностей из сообщения

Два варианта с одним контрактом: детерминированный (только resolvers)
и гибридный (resolvers + Gemini дозаполняет пустые поля). Оркестратор
не зависит от того, какой вариант активен.
"""

import json
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel, Field

from shared.models.booking import normalize_clock
from shared.models.session import Session, WaitingFor
from shared.utils.text import normalize_text

from ..config import Settings
from ..core.heuristics import classify
from ..core.resolvers import (
    infer_ambiguous_time,
    is_ambiguous_time,
    parse_bare_name,
    resolve_date,
    resolve_duration,
    resolve_name,
    resolve_sport,
    resolve_time,
)
from .gemini_service import GeminiService, LLMError
from .prompt_manager import PromptManager

logger = structlog.get_logger(__name__)


class InterpreterUnavailable(Exception):
    """Интерпретатор не смог разобрать сообщение (LLM недоступен, правила пусты)"""


class Interpretation(BaseModel):
    """Структурированный результат разбора сообщения"""

    intent: str = Field(default="other", description="book | info | other")
    sport: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    time_is_ambiguous: bool = False
    duration: Optional[int] = Field(None, description="Примененная длительность (после ограничения)")
    requested_duration: Optional[int] = Field(None, description="Запрошенная длительность")
    name: Optional[str] = None
    last_name: Optional[str] = None

    @property
    def duration_clamped(self) -> bool:
        return (
            self.duration is not None
            and self.requested_duration is not None
            and self.requested_duration > self.duration
        )

    def has_booking_fields(self) -> bool:
        return any([self.sport, self.date, self.time, self.duration, self.name])


class Interpreter(ABC):
    """Абстрактный интерпретатор"""

    @abstractmethod
    async def interpret(self, text: str, session: Session, now: datetime) -> Interpretation:
        """
        Разобрать сообщение

        Args:
            text: Текст пользователя
            session: Текущая сессия (контекст: черновик, ожидаемое поле, история)
            now: Текущее время в таймзоне клуба

        Raises:
            InterpreterUnavailable: Разбор невозможен
        """


class RuleBasedInterpreter(Interpreter):
    """Детерминированный интерпретатор на resolvers"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.sport_keywords = [(s.name, s.keywords or [s.name.lower()]) for s in settings.sports]

    def _is_today_context(self, text: str, session: Session, draft_date: Optional[str], today: date) -> bool:
        if draft_date == today.isoformat():
            return True
        history = " ".join(turn.content for turn in session.transcript)
        return bool(re.search(r"\bhoy\b", normalize_text(f"{history} {text}")))

    def extract(self, text: str, session: Session, now: datetime) -> Interpretation:
        """Синхронный разбор только правилами"""
        today = now.date()
        result = Interpretation()

        result.sport = resolve_sport(text, self.sport_keywords)
        result.date = resolve_date(text, today)

        time_str = resolve_time(text)
        if time_str and is_ambiguous_time(text, time_str):
            draft_date = result.date or session.draft.date
            inferred = infer_ambiguous_time(
                int(time_str[:2]),
                self._is_today_context(text, session, draft_date, today),
                now.hour
            )
            if inferred:
                time_str = inferred
            else:
                result.time_is_ambiguous = True
        result.time = time_str

        duration = resolve_duration(text, self.settings.max_duration)
        if duration:
            result.duration = duration.hours
            result.requested_duration = duration.requested

        if session.waiting_for == WaitingFor.NAME:
            result.name, result.last_name = parse_bare_name(text)
        else:
            result.name, result.last_name = resolve_name(text)

        signals = classify(text)
        if signals.booking_intent or any([result.sport, result.date, result.time, result.duration]):
            result.intent = "book"
        elif signals.info_question:
            result.intent = "info"

        return result

    async def interpret(self, text: str, session: Session, now: datetime) -> Interpretation:
        return self.extract(text, session, now)


class GeminiInterpreter(Interpreter):
    """
    Гибридный интерпретатор

    Сначала правила, затем Gemini заполняет только поля, не найденные
    правилами. Значения модели проверяются теми же resolvers.
    """

    def __init__(
        self,
        rules: RuleBasedInterpreter,
        gemini: GeminiService,
        prompt_manager: PromptManager,
        history_window: int = 12
    ):
        self.rules = rules
        self.gemini = gemini
        self.prompt_manager = prompt_manager
        self.history_window = history_window

    async def interpret(self, text: str, session: Session, now: datetime) -> Interpretation:
        base = self.rules.extract(text, session, now)
        if base.sport and base.date and base.time:
            return base

        contents = []
        for turn in session.transcript[-self.history_window:]:
            if turn.role == "user":
                contents.append(self.gemini.user_content(turn.content))
            else:
                contents.append(self.gemini.model_content(turn.content))
        contents.append(self.gemini.user_content(text))

        try:
            response = await self.gemini.generate_response(
                contents=contents,
                system_instruction=self.prompt_manager.get_interpreter_prompt(now.date().isoformat()),
                response_mime_type="application/json",
            )
            model_fields = self._parse_model_output(response.get("text"))
        except LLMError as e:
            if base.has_booking_fields() or base.intent != "other":
                logger.warning("interpreter_model_failed_rules_used", error=str(e))
                return base
            raise InterpreterUnavailable(str(e)) from e

        merged = self._merge(base, model_fields, now)
        logger.debug(
            "interpretation_merged",
            intent=merged.intent,
            sport=merged.sport,
            date=merged.date,
            time=merged.time
        )
        return merged

    @staticmethod
    def _parse_model_output(raw: Optional[str]) -> Dict[str, Any]:
        if not raw:
            return {}
        cleaned = raw.strip()
        if cleaned.startswith("```"):
            cleaned = cleaned.strip("`")
            if cleaned.startswith("json"):
                cleaned = cleaned[4:]
        try:
            data = json.loads(cleaned)
        except ValueError:
            logger.warning("interpreter_invalid_json", preview=raw[:100])
            return {}
        return data if isinstance(data, dict) else {}

    def _merge(self, base: Interpretation, fields: Dict[str, Any], now: datetime) -> Interpretation:
        result = base.model_copy()
        settings = self.rules.settings

        if not result.sport and isinstance(fields.get("sport"), str):
            result.sport = resolve_sport(fields["sport"], self.rules.sport_keywords)

        if not result.date and isinstance(fields.get("date"), str):
            result.date = _valid_future_date(fields["date"], now.date())

        if not result.time and isinstance(fields.get("time"), str):
            result.time = normalize_clock(fields["time"])

        if result.duration is None and fields.get("duration") is not None:
            try:
                requested = int(fields["duration"])
            except (TypeError, ValueError):
                requested = 0
            if requested >= 1:
                result.requested_duration = requested
                result.duration = min(requested, settings.max_duration)

        if not result.name and isinstance(fields.get("name"), str) and fields["name"].strip():
            result.name = fields["name"].strip().title()
            last_name = fields.get("last_name")
            result.last_name = last_name.strip().title() if isinstance(last_name, str) and last_name.strip() else None

        if result.intent == "other" and fields.get("intent") in ("book", "info"):
            result.intent = fields["intent"]
        return result


def _valid_future_date(value: str, today: date) -> Optional[str]:
    try:
        parsed = date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None
    if parsed < today:
        return None
    return parsed.isoformat()


def create_interpreter(
    settings: Settings,
    gemini: Optional[GeminiService] = None,
    prompt_manager: Optional[PromptManager] = None
) -> Interpreter:
    """
    Интерпретатор по настройке interpreter_backend

    Args:
        settings: Настройки
        gemini: Сервис Gemini (обязателен для "gemini")
        prompt_manager: Менеджер промптов (обязателен для "gemini")
    """
    rules = RuleBasedInterpreter(settings)
    backend = (settings.interpreter_backend or "rules").lower()
    if backend == "gemini":
        if gemini is None or prompt_manager is None:
            raise ValueError("gemini interpreter requires GeminiService and PromptManager")
        logger.info("interpreter_selected", backend="gemini")
        return GeminiInterpreter(rules, gemini, prompt_manager, settings.history_window)
    if backend != "rules":
        raise ValueError(f"Unknown interpreter backend: {settings.interpreter_backend}")
    logger.info("interpreter_selected", backend="rules")
    return rules
