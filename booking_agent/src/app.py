"""
Booking Agent FastAPI Application

REST API: нормализованные события, WhatsApp webhook, health check
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import structlog

from shared.models.message import InboundEvent

from .channels import whatsapp
from .config import Settings, settings as default_settings
from .core.context import AgentContext
from .core.orchestrator import Orchestrator
from .logging_config import configure_logging
from .services.channel_io import CollectingSender

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, context: Optional[AgentContext] = None) -> FastAPI:
    """
    Сборка FastAPI приложения

    Args:
        settings: Настройки (по умолчанию глобальные)
        context: Готовый AgentContext (по умолчанию собирается в lifespan)
    """
    settings = settings or default_settings
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI app"""
        logger.info("starting_booking_agent")

        agent_context = context or AgentContext.create(settings)
        app.state.settings = settings
        app.state.context = agent_context
        app.state.orchestrator = Orchestrator(agent_context)

        logger.info("booking_agent_ready")

        yield

        logger.info("shutting_down_booking_agent")
        await agent_context.close()

    app = FastAPI(
        title="Club Booking Agent",
        version="1.0.0",
        description="Ассистент бронирования кортов клуба",
        lifespan=lifespan
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        redis_ok = await request.app.state.context.store.health_check()
        return {
            "status": "healthy" if redis_ok else "degraded",
            "service": "booking-agent",
            "version": "1.0.0",
            "redis": redis_ok
        }

    @app.post("/process")
    async def process_event(event: InboundEvent, request: Request):
        """
        Обработать нормализованное событие канала

        Returns:
            Статус хода и исходящие действия
        """
        sender = CollectingSender()
        outcome = await request.app.state.orchestrator.handle_incoming(event, sender)
        return {
            "ok": outcome.status == "sent",
            "status": outcome.status,
            "actions": [action.model_dump() for action in sender.actions],
        }

    app.include_router(whatsapp.router, prefix="/whatsapp", tags=["WhatsApp"])
    return app


app = create_app()
