"""
AgentContext - все зависимости агента в одном объекте

Собирается один раз из Settings и явно передается оркестратору.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

import redis.asyncio as aioredis
import structlog

from backend_integrations.src.base import BaseAvailabilityGateway
from backend_integrations.src.factory import GatewayFactory

from ..config import Settings
from ..services.channel_io import ChannelIO
from ..services.gemini_service import GeminiService
from ..services.interpreter import Interpreter, create_interpreter
from ..services.prompt_manager import PromptManager
from ..services.responder import GeminiResponder, Responder, RuleBasedResponder
from ..services.tool_manager import ToolManager
from ..storage.guards import FlowTokenGuard, MessageDedupGuard
from ..storage.redis_storage import SessionStore
from .resolvers import local_now

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AgentContext:
    """Контекст агента: хранилище, guards, шлюз, интерпретатор, часы"""

    settings: Settings
    redis: aioredis.Redis
    store: SessionStore
    dedup: MessageDedupGuard
    flow: FlowTokenGuard
    channel_io: ChannelIO
    gateway: BaseAvailabilityGateway
    interpreter: Interpreter
    responder: Responder
    clock: Callable[[], datetime] = field(default=_utc_now)

    def now(self) -> datetime:
        """Текущее время в таймзоне клуба"""
        return local_now(self.settings.timezone, self.clock())

    def current_hour_for(self, date_str: str) -> int:
        """current_time_number для get_hours: текущий час если дата сегодня, иначе 0"""
        now = self.now()
        return now.hour if date_str == now.date().isoformat() else 0

    @classmethod
    def create(
        cls,
        settings: Settings,
        redis: Optional[aioredis.Redis] = None,
        gateway: Optional[BaseAvailabilityGateway] = None,
        gemini: Optional[GeminiService] = None,
        clock: Optional[Callable[[], datetime]] = None
    ) -> "AgentContext":
        """
        Сборка контекста

        Args:
            settings: Настройки
            redis: Общий Redis клиент (по умолчанию из settings.redis_url)
            gateway: Шлюз бэкенда (по умолчанию из GatewayFactory)
            gemini: Сервис Gemini (по умолчанию создается при наличии API ключа)
            clock: Источник текущего времени (для тестов)
        """
        redis = redis or aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True
        )

        gateway = gateway or GatewayFactory.create(
            backend_type=settings.backend_type,
            base_url=settings.backend_base_url,
            token=settings.backend_token,
            confirm_endpoint=settings.confirm_endpoint,
            timeout=settings.backend_timeout,
            max_attempts=settings.backend_max_attempts,
            retry_base_delay=settings.backend_retry_base_delay,
        )

        if gemini is None and settings.gemini_api_key:
            gemini = GeminiService(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                timeout=settings.llm_timeout,
            )

        prompt_manager = PromptManager(
            club=settings.club,
            sports=settings.sports,
            default_sport=settings.default_sport_name(),
            timezone=settings.timezone,
        )

        flow = FlowTokenGuard(redis, ttl=settings.flow_token_ttl)
        context = cls(
            settings=settings,
            redis=redis,
            store=SessionStore(
                redis=redis,
                session_ttl=settings.session_ttl,
                bookings_ttl=settings.bookings_ttl,
                max_bookings=settings.max_confirmed_bookings,
            ),
            dedup=MessageDedupGuard(redis, ttl=settings.dedup_ttl),
            flow=flow,
            channel_io=ChannelIO(flow, max_buttons=settings.max_buttons, list_max_rows=settings.list_max_rows),
            gateway=gateway,
            interpreter=create_interpreter(settings, gemini, prompt_manager),
            responder=RuleBasedResponder(settings.club),
            clock=clock or _utc_now,
        )

        if gemini is not None:
            tool_manager = ToolManager(
                gateway=gateway,
                sports=settings.sports,
                current_hour_for=context.current_hour_for,
                default_sport=settings.default_sport_name(),
            )
            context.responder = GeminiResponder(
                gemini=gemini,
                prompt_manager=prompt_manager,
                tool_manager=tool_manager,
                fallback=RuleBasedResponder(settings.club),
                max_iterations=settings.max_tool_iterations,
                history_window=settings.history_window,
            )

        logger.info(
            "agent_context_created",
            backend=gateway.get_backend_name(),
            interpreter=settings.interpreter_backend,
            responder=type(context.responder).__name__
        )
        return context

    async def close(self):
        """Закрыть соединения"""
        await self.gateway.close()
        await self.store.disconnect()
