"""
WhatsApp Webhook Router

Разбор payload WhatsApp Business API в InboundEvent и передача в Orchestrator
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
import structlog

from shared.models.message import Channel, InboundEvent
from shared.utils.text import mask_phone

from ..services.channel_io import CollectingSender

router = APIRouter()
logger = structlog.get_logger(__name__)

_SKIPPED_TYPES = {"reaction", "sticker", "image", "audio", "video", "document", "location", "contacts", "unsupported"}


def _message_text(wa_message: Dict[str, Any]) -> Optional[str]:
    wa_type = wa_message.get("type", "text")
    if wa_type == "text":
        return (wa_message.get("text") or {}).get("body")
    if wa_type == "button":
        button = wa_message.get("button") or {}
        return button.get("text") or button.get("payload")
    if wa_type == "interactive":
        interactive = wa_message.get("interactive") or {}
        reply = interactive.get("button_reply") or interactive.get("list_reply") or {}
        return reply.get("title") or reply.get("id")
    return None


def _to_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def events_from_webhook(payload: Dict[str, Any]) -> List[InboundEvent]:
    """
    Входящие события из webhook payload

    WhatsApp API структура: {"entry": [{"changes": [{"value": {"messages": [...]}}]}]}.
    Реакции, стикеры и медиа пропускаются.

    Args:
        payload: JSON тело webhook

    Returns:
        Список InboundEvent в порядке payload
    """
    events: List[InboundEvent] = []
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            contacts = value.get("contacts") or []
            profile_name = ((contacts[0].get("profile") or {}).get("name")) if contacts else None

            for wa_message in value.get("messages") or []:
                wa_type = wa_message.get("type", "text")
                if wa_type in _SKIPPED_TYPES:
                    logger.debug("whatsapp_message_skipped", type=wa_type)
                    continue

                text = _message_text(wa_message)
                wa_from = wa_message.get("from")
                if not text or not wa_from:
                    continue

                meta: Dict[str, Any] = {"type": wa_type}
                if profile_name:
                    meta["profile_name"] = profile_name

                events.append(InboundEvent(
                    channel=Channel.WHATSAPP,
                    user_id=wa_from,
                    text=text,
                    raw=wa_message,
                    message_id=wa_message.get("id"),
                    timestamp=_to_int(wa_message.get("timestamp")),
                    meta=meta
                ))
    return events


@router.get("/webhook")
async def whatsapp_webhook_verify(
    request: Request,
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    hub_verify_token: str = Query(None, alias="hub.verify_token")
):
    """
    Верификация webhook для WhatsApp Business API

    Facebook/WhatsApp требует GET запрос для верификации
    """
    logger.info("whatsapp_verification_request", mode=hub_mode)

    expected = request.app.state.settings.whatsapp_verify_token
    if hub_mode == "subscribe" and hub_challenge and (not expected or hub_verify_token == expected):
        try:
            return int(hub_challenge)
        except ValueError:
            return hub_challenge

    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("/webhook")
async def whatsapp_webhook(request: Request):
    """
    Webhook для WhatsApp Business API

    Каждое сообщение обрабатывается отдельным ходом Orchestrator;
    исходящие действия возвращаются в ответе для адаптера доставки.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    orchestrator = request.app.state.orchestrator
    results = []
    for event in events_from_webhook(payload):
        logger.info("whatsapp_message_received", phone=mask_phone(event.user_id), message_id=event.message_id)
        sender = CollectingSender()
        outcome = await orchestrator.handle_incoming(event, sender)
        results.append({
            "message_id": event.message_id,
            "status": outcome.status,
            "actions": [action.model_dump() for action in sender.actions],
        })

    return {"status": "success", "results": results}
