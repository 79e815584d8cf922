"""
Responder - свободный ответ на сообщения вне сценария бронирования
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

import structlog

from shared.models.booking import ConfirmedBooking
from shared.models.session import Session

from ..config import ClubInfo
from ..core import replies
from ..core.heuristics import Signals, classify
from .gemini_service import GeminiService, LLMError
from .prompt_manager import PromptManager
from .tool_manager import ToolManager

logger = structlog.get_logger(__name__)


class Responder(ABC):
    """Абстрактный генератор свободного ответа"""

    @abstractmethod
    async def respond(
        self,
        text: str,
        session: Session,
        bookings: List[ConfirmedBooking],
        now: datetime
    ) -> str:
        """
        Ответ пользователю

        Args:
            text: Текст пользователя
            session: Текущая сессия
            bookings: Подтвержденные брони пользователя
            now: Текущее время в таймзоне клуба
        """


def canned_info_reply(signals: Signals, club: ClubInfo) -> Optional[str]:
    """Готовый ответ на частый вопрос о клубе (None если вопрос не распознан)"""
    if signals.late_question:
        return replies.late_arrival(club)
    if signals.name_question:
        return replies.assistant_name(club)
    if signals.price_question:
        return replies.prices(club)
    if signals.opening_hours_question:
        return replies.opening_hours(club)
    return None


class RuleBasedResponder(Responder):
    """Canned-ответы по информации о клубе"""

    def __init__(self, club: ClubInfo):
        self.club = club

    async def respond(self, text, session, bookings, now) -> str:
        signals = classify(text)
        canned = canned_info_reply(signals, self.club)
        if canned:
            return canned
        if signals.info_question:
            return replies.club_info(self.club)
        return replies.GENERIC_PROMPT


class GeminiResponder(Responder):
    """
    Свободный ответ через Gemini с function calling

    Цикл вызовов инструментов ограничен max_iterations; если модель
    так и не дала финальный текст, возвращается общий вопрос.
    """

    def __init__(
        self,
        gemini: GeminiService,
        prompt_manager: PromptManager,
        tool_manager: ToolManager,
        fallback: RuleBasedResponder,
        max_iterations: int = 4,
        history_window: int = 12
    ):
        self.gemini = gemini
        self.prompt_manager = prompt_manager
        self.tool_manager = tool_manager
        self.fallback = fallback
        self.max_iterations = max_iterations
        self.history_window = history_window

    async def respond(self, text, session, bookings, now) -> str:
        contents = []
        for turn in session.transcript[-self.history_window:]:
            if turn.role == "user":
                contents.append(self.gemini.user_content(turn.content))
            else:
                contents.append(self.gemini.model_content(turn.content))
        contents.append(self.gemini.user_content(text))

        system_prompt = self.prompt_manager.get_agent_prompt(
            session=session,
            bookings=bookings,
            today=now.date().isoformat()
        )
        tools = self.tool_manager.get_tools_for_gemini()

        try:
            for iteration in range(self.max_iterations):
                response = await self.gemini.generate_response(
                    contents=contents,
                    tools=tools,
                    system_instruction=system_prompt
                )
                calls = response["function_calls"]
                if not calls:
                    return response.get("text") or replies.GENERIC_PROMPT

                if response.get("content") is not None:
                    contents.append(response["content"])
                for call in calls:
                    args = dict(call["args"])
                    if call["name"] == "get_user":
                        args["phone"] = session.user_id
                    result = await self.tool_manager.execute_function(call["name"], args)
                    contents.append(self.gemini.function_response_content(call["name"], result))

                logger.debug("agent_tool_iteration", iteration=iteration + 1, calls=len(calls))

        except LLMError as e:
            logger.warning("responder_model_failed", error=str(e))
            return await self.fallback.respond(text, session, bookings, now)

        logger.warning("agent_tool_loop_exhausted", max_iterations=self.max_iterations)
        return replies.GENERIC_PROMPT
