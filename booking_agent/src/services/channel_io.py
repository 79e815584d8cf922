"""
Channel I/O - отправка исходящих действий через адаптер канала

Каждая отправка проверяет flow-токен непосредственно перед доставкой.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

import structlog
from pydantic import BaseModel

from shared.models.message import (
    ListSection,
    MISSING_TO,
    SEND_FAILED,
    STALE_FLOW,
    SendButtons,
    SendList,
    SendLocation,
    SendResult,
    SendText,
    render_as_text,
)
from shared.utils.text import mask_phone

from ..storage.guards import FlowTokenGuard

logger = structlog.get_logger(__name__)


class ChannelSender(ABC):
    """Транспортный порт канала (WhatsApp, voice, ...)"""

    @abstractmethod
    async def deliver(self, action: BaseModel) -> None:
        """
        Доставить действие пользователю

        Raises:
            Exception: Любая ошибка транспорта
        """


class CollectingSender(ChannelSender):
    """Собирает действия, HTTP-слой возвращает их адаптеру канала"""

    def __init__(self):
        self.actions: List[BaseModel] = []

    async def deliver(self, action: BaseModel) -> None:
        self.actions.append(action)


class ChannelIO:
    """
    Отправка с проверкой flow-токена и текстовым fallback

    Args:
        flow_guard: Guard flow-токенов
        max_buttons: Максимум кнопок
        list_max_rows: Максимум строк в list-сообщении
    """

    def __init__(self, flow_guard: FlowTokenGuard, max_buttons: int = 3, list_max_rows: int = 10):
        self.flow_guard = flow_guard
        self.max_buttons = max_buttons
        self.list_max_rows = list_max_rows

    def _cap(self, action: BaseModel) -> BaseModel:
        if isinstance(action, SendButtons) and len(action.options) > self.max_buttons:
            return action.model_copy(update={"options": action.options[: self.max_buttons]})
        if isinstance(action, SendList):
            remaining = self.list_max_rows
            sections = []
            for section in action.sections:
                rows = section.rows[:remaining]
                remaining -= len(rows)
                if rows:
                    sections.append(ListSection(title=section.title, rows=rows))
            return action.model_copy(update={"sections": sections})
        return action

    async def send(self, sender: ChannelSender, action: BaseModel, flow_token: Optional[str] = None) -> SendResult:
        """
        Отправить действие

        Args:
            sender: Транспорт
            action: Исходящее действие
            flow_token: Токен, под которым посчитан ответ

        Returns:
            SendResult (ok или missing_to / stale_flow / send_failed)
        """
        to = getattr(action, "to", None)
        if not to:
            logger.warning("send_missing_recipient", action=getattr(action, "type", None))
            return SendResult(ok=False, error=MISSING_TO)

        if not await self.flow_guard.is_current(to, flow_token):
            logger.info("stale_flow_send_dropped", phone=mask_phone(to), action=action.type)
            return SendResult(ok=False, error=STALE_FLOW)

        action = self._cap(action)
        try:
            await sender.deliver(action)
            logger.debug("action_sent", phone=mask_phone(to), action=action.type)
            return SendResult(ok=True)
        except Exception as e:
            logger.error("send_error", phone=mask_phone(to), action=action.type, error=str(e))
            if not isinstance(action, (SendButtons, SendList, SendLocation)):
                return SendResult(ok=False, error=SEND_FAILED)

        fallback = SendText(to=to, body=render_as_text(action))
        try:
            await sender.deliver(fallback)
            logger.info("send_fallback_text_used", phone=mask_phone(to), action=action.type)
            return SendResult(ok=True)
        except Exception as e:
            logger.error("send_fallback_error", phone=mask_phone(to), error=str(e))
            return SendResult(ok=False, error=SEND_FAILED)
