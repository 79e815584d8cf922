"""
Orchestrator - главный контроллер диалога

Один входящий event = один ход: дедупликация, загрузка сессии,
детерминированные ветки, интерпретация, продвижение черновика брони,
ровно одна отправка и одно сохранение сессии.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

import structlog
from pydantic import BaseModel

from backend_integrations.src.base import GatewayError, SlotTakenError
from shared.models.booking import BookingOption, BookingRequest, ConfirmedBooking
from shared.models.message import (
    Channel,
    Escalate,
    InboundEvent,
    ListRow,
    ListSection,
    SendButtons,
    SendList,
    SendLocation,
    SendResult,
    SendText,
    STALE_FLOW,
    render_as_text,
)
from shared.models.session import PendingConfirmation, Session, WaitingFor
from shared.utils.text import mask_phone, normalize_phone

from ..services.channel_io import ChannelSender
from ..services.interpreter import Interpretation, InterpreterUnavailable
from ..services.responder import canned_info_reply
from . import replies
from .context import AgentContext
from .heuristics import DecisionKind, Signals, classify, compute_confidence
from .slot_builder import build_options, find_option, pick_closest_options, start_times

logger = structlog.get_logger(__name__)

SUPPORTED_CHANNELS = (Channel.WHATSAPP, Channel.VOICE)


@dataclass
class TurnOutcome:
    """Итог обработки одного события"""
    status: str
    action: Optional[BaseModel] = None
    send_result: Optional[SendResult] = None


@dataclass
class _Turn:
    event: InboundEvent
    phone: str
    text: str
    token: Optional[str]
    sender: ChannelSender
    session: Optional[Session] = None
    interpretation: Optional[Interpretation] = None


@dataclass
class _Decision:
    action: BaseModel
    kind: Optional[DecisionKind] = None


class Orchestrator:
    """
    Главный оркестратор диалога

    Отвечает за:
    - Идемпотентность и порядок сообщений
    - Reset и flow-токены
    - Продвижение черновика брони до подтверждения
    - Эскалацию при низкой уверенности
    """

    def __init__(self, context: AgentContext):
        self.ctx = context
        self.settings = context.settings
        logger.info("orchestrator_initialized")

    async def handle_incoming(self, event: InboundEvent, sender: ChannelSender) -> TurnOutcome:
        """
        Обработка входящего события

        Args:
            event: Нормализованное событие канала
            sender: Транспорт для ответа

        Returns:
            TurnOutcome
        """
        if event.channel not in SUPPORTED_CHANNELS:
            logger.warning("unsupported_channel", channel=event.channel)
            return TurnOutcome(status="ignored")

        phone = normalize_phone(event.user_id)
        text = (event.text or "").strip()
        if not phone or not text:
            logger.info("empty_event_ignored", phone=mask_phone(phone), message_id=event.message_id)
            return TurnOutcome(status="ignored")

        if not await self.ctx.dedup.mark_processed(event.message_id):
            return TurnOutcome(status="duplicate")

        logger.info(
            "handling_message",
            phone=mask_phone(phone),
            channel=event.channel.value,
            message_id=event.message_id
        )

        token = await self.ctx.flow.ensure_token(phone)
        turn = _Turn(event=event, phone=phone, text=text, token=token, sender=sender)

        try:
            return await self._process(turn)
        except Exception as e:
            logger.error("turn_processing_error", phone=mask_phone(phone), error=str(e), exc_info=True)
            return await self._finish(turn, _Decision(SendText(to=phone, body=replies.PLEASE_REPEAT)))

    async def _process(self, turn: _Turn) -> TurnOutcome:
        session = await self.ctx.store.get_session(turn.phone)
        if session is None:
            session = Session(
                user_id=turn.phone,
                channel=turn.event.channel.value,
                ttl=self.settings.session_ttl
            )
            logger.info("session_created", phone=mask_phone(turn.phone))

        ts = turn.event.timestamp
        if ts and ts < session.last_ts:
            logger.info("stale_event_dropped", phone=mask_phone(turn.phone), ts=ts, last_ts=session.last_ts)
            return TurnOutcome(status="stale_event")
        if ts:
            session.last_ts = ts
        turn.session = session

        signals = classify(turn.text, self.settings.courtesy_phrases)
        if signals.reset:
            return await self._reset(turn)

        if not session.user.checked:
            await self._lookup_profile(session)

        decision = await self._decide(turn, signals)
        return await self._finish(turn, decision)

    async def _reset(self, turn: _Turn) -> TurnOutcome:
        new_token = await self.ctx.flow.reset(turn.phone)
        await self.ctx.store.delete_session(turn.phone)
        await self.ctx.store.clear_confirmed_bookings(turn.phone)
        logger.info("conversation_reset", phone=mask_phone(turn.phone))

        turn.session = None
        turn.token = new_token
        return await self._finish(turn, _Decision(SendText(to=turn.phone, body=replies.RESET_ACK)))

    async def _lookup_profile(self, session: Session):
        try:
            profile = await self.ctx.gateway.get_user(session.user_id)
        except GatewayError as e:
            logger.warning("profile_lookup_failed", phone=mask_phone(session.user_id), error=str(e))
            return
        session.user.apply_profile(profile)
        logger.info("profile_checked", phone=mask_phone(session.user_id), found=profile.found)

    async def _decide(self, turn: _Turn, signals: Signals) -> _Decision:
        session = turn.session
        now = self.ctx.now()

        try:
            interpretation = await self.ctx.interpreter.interpret(turn.text, session, now)
        except InterpreterUnavailable as e:
            logger.warning("interpreter_unavailable", phone=mask_phone(turn.phone), error=str(e))
            if session.pending is None and not (signals.courtesy_only or signals.greeting or signals.is_canned_info):
                return _Decision(SendText(to=turn.phone, body=replies.PLEASE_REPEAT))
            interpretation = Interpretation()
        turn.interpretation = interpretation

        notice = self._apply_interpretation(session, interpretation, signals)

        if session.pending is not None:
            if signals.yes and not signals.no:
                return await self._submit_booking(turn)
            if signals.no and not signals.yes:
                self._drop_selection(session)
                session.waiting_for = WaitingFor.TIME
                return _Decision(SendText(to=turn.phone, body=replies.ASK_OTHER_TIME), DecisionKind.ASK)
            return self._with_notice(self._ask_confirmation(turn), notice)

        if signals.courtesy_only:
            return _Decision(SendText(to=turn.phone, body=replies.courtesy(session.display_name)), DecisionKind.REPLY)

        advancing = self._is_advancing(session, interpretation, signals)

        if not advancing:
            if signals.location_question:
                club = self.settings.club
                return _Decision(
                    SendLocation(
                        to=turn.phone,
                        lat=club.latitude,
                        lon=club.longitude,
                        name=club.name,
                        address=club.address
                    ),
                    DecisionKind.SEND_LOCATION
                )
            canned = canned_info_reply(signals, self.settings.club)
            if canned:
                return _Decision(SendText(to=turn.phone, body=canned), DecisionKind.REPLY)
            if signals.greeting:
                body = replies.greeting(session.display_name, self.settings.club)
                return _Decision(SendText(to=turn.phone, body=body), DecisionKind.REPLY)
            return await self._free_reply(turn, now)

        decision = await self._advance_booking(turn)
        return self._with_notice(decision, notice)

    def _is_advancing(self, session: Session, interpretation: Interpretation, signals: Signals) -> bool:
        if interpretation.has_booking_fields() or interpretation.intent == "book":
            return True
        if signals.wants_other_times or signals.wants_availability:
            return True
        return session.waiting_for is not None and not (signals.is_canned_info or signals.info_question)

    def _apply_interpretation(self, session: Session, interpretation: Interpretation, signals: Signals) -> Optional[str]:
        """
        Слияние сущностей в черновик

        Returns:
            Уведомление об ограничении длительности (или None)
        """
        draft = session.draft
        changed = False

        if interpretation.sport and interpretation.sport != draft.sport:
            session.set_sport(interpretation.sport)
            changed = True
        if interpretation.date and interpretation.date != draft.date:
            session.set_date(interpretation.date)
            changed = True

        if interpretation.duration and interpretation.duration != draft.duration:
            draft.duration = interpretation.duration
            if session.availability.fetched:
                session.availability.options = build_options(session.availability.slots, draft.duration)
                session.availability.hours = start_times(session.availability.options)
            changed = True

        if interpretation.time and interpretation.time != draft.time:
            draft.time = interpretation.time
            draft.time_is_ambiguous = interpretation.time_is_ambiguous
            changed = True
        elif signals.wants_other_times and draft.time:
            draft.time = None
            changed = True

        if interpretation.name:
            draft.name = interpretation.name
            draft.last_name = interpretation.last_name
            if session.pending is not None:
                session.pending.name = interpretation.name
                session.pending.last_name = interpretation.last_name

        if changed:
            session.completed = False
            if session.pending is not None:
                self._drop_selection(session, keep_time=True)

        if interpretation.duration_clamped:
            logger.info(
                "duration_clamped",
                requested=interpretation.requested_duration,
                applied=interpretation.duration
            )
            return replies.duration_clamped(interpretation.requested_duration, interpretation.duration)
        return None

    @staticmethod
    def _drop_selection(session: Session, keep_time: bool = False):
        session.pending = None
        session.draft.court = None
        if not keep_time:
            session.draft.time = None
        if session.waiting_for == WaitingFor.CONFIRMATION:
            session.waiting_for = None

    async def _advance_booking(self, turn: _Turn) -> _Decision:
        session = turn.session
        draft = session.draft

        if not draft.sport:
            if len(self.settings.sports) == 1:
                session.set_sport(self.settings.sports[0].name)
            else:
                session.waiting_for = WaitingFor.SPORT
                names = [s.name for s in self.settings.sports]
                return _Decision(
                    SendButtons(to=turn.phone, body=replies.ask_sport(names), options=names),
                    DecisionKind.ASK
                )

        if not draft.date:
            session.waiting_for = WaitingFor.DATE
            return _Decision(SendText(to=turn.phone, body=replies.ASK_DATE), DecisionKind.ASK)

        if not session.availability.fetched:
            try:
                await self._fetch_availability(session)
            except GatewayError as e:
                logger.error("availability_fetch_failed", phone=mask_phone(turn.phone), error=str(e))
                return _Decision(SendText(to=turn.phone, body=replies.BOOKING_FAILED))

        options = session.availability.options
        if not options:
            return self._no_availability(turn)

        if draft.time:
            option = find_option(options, draft.time, allow_afternoon=draft.time_is_ambiguous)
            if option is None:
                requested = draft.time
                draft.time = None
                session.waiting_for = WaitingFor.TIME
                closest = pick_closest_options(options, requested, self.settings.max_buttons, exclude=[requested])
                return self._offer(turn, replies.time_not_available(requested), closest)

            draft.time = option.start
            draft.time_is_ambiguous = False
            draft.court = option.court

            name = session.display_name
            if not name:
                session.waiting_for = WaitingFor.NAME
                return _Decision(SendText(to=turn.phone, body=replies.ASK_NAME), DecisionKind.ASK)

            session.pending = PendingConfirmation(
                sport=draft.sport,
                date=draft.date,
                start=option.start,
                times=option.times,
                court=option.court,
                duration=draft.duration,
                name=name,
                last_name=session.display_last_name
            )
            session.waiting_for = WaitingFor.CONFIRMATION
            return self._ask_confirmation(turn)

        session.waiting_for = WaitingFor.TIME
        body = replies.offer_times(draft.sport, draft.date, draft.duration)
        return self._offer(turn, body, pick_closest_options(options, None, len(options)))

    async def _fetch_availability(self, session: Session):
        draft = session.draft
        slots = await self.ctx.gateway.get_available_slots(
            self._backend_sport(draft.sport),
            draft.date,
            self.ctx.current_hour_for(draft.date)
        )
        availability = session.availability
        availability.slots = slots
        availability.options = build_options(slots, draft.duration)
        availability.hours = start_times(availability.options)
        availability.fetched = True
        logger.info(
            "availability_fetched",
            phone=mask_phone(session.user_id),
            sport=draft.sport,
            date=draft.date,
            slots=len(slots),
            options=len(availability.options)
        )

    def _backend_sport(self, sport: str) -> str:
        for configured in self.settings.sports:
            if configured.name == sport:
                return configured.backend_name
        return sport

    def _no_availability(self, turn: _Turn) -> _Decision:
        session = turn.session
        body = replies.no_availability(session.draft.sport, session.draft.date)
        session.draft.date = None
        session.draft.time = None
        session.availability.invalidate()
        session.waiting_for = WaitingFor.DATE
        return _Decision(SendText(to=turn.phone, body=body), DecisionKind.ASK)

    def _offer(self, turn: _Turn, body: str, options: List[BookingOption]) -> _Decision:
        if not options:
            return self._no_availability(turn)

        labels = [o.start for o in options]
        if len(labels) <= self.settings.max_buttons:
            action = SendButtons(to=turn.phone, body=body, options=labels)
        else:
            rows = [ListRow(id=o.start, title=o.start, description=o.court) for o in options]
            action = SendList(
                to=turn.phone,
                body=body,
                sections=[ListSection(title=turn.session.draft.sport or "Horarios", rows=rows)]
            )
        return _Decision(action, DecisionKind.OFFER_OPTIONS)

    def _ask_confirmation(self, turn: _Turn) -> _Decision:
        pending = turn.session.pending
        body = replies.confirm_booking(pending.sport, pending.date, pending.times, pending.name, pending.last_name)
        return _Decision(
            SendButtons(to=turn.phone, body=body, options=[replies.CONFIRM_YES, replies.CONFIRM_NO]),
            DecisionKind.ASK
        )

    async def _submit_booking(self, turn: _Turn) -> _Decision:
        session = turn.session
        pending = session.pending
        request = BookingRequest(
            phone=turn.phone,
            date=pending.date,
            times=pending.times,
            court=pending.court,
            sport=self._backend_sport(pending.sport),
            user_type="usuario" if session.user.found else "invitado",
            name=pending.name,
            last_name=pending.last_name,
            backend_user_id=session.user.backend_id
        )

        try:
            await self.ctx.gateway.create_booking(request)
        except SlotTakenError as e:
            logger.info("booking_slot_taken", phone=mask_phone(turn.phone), time=pending.start, error=str(e))
            return await self._offer_after_slot_taken(turn, pending.start)
        except GatewayError as e:
            session.booking_failures += 1
            logger.error(
                "booking_failed",
                phone=mask_phone(turn.phone),
                failures=session.booking_failures,
                error=str(e)
            )
            failed = pending.start
            self._drop_selection(session)
            session.waiting_for = WaitingFor.TIME
            if session.booking_failures >= self.settings.max_booking_failures:
                return _Decision(Escalate(to=turn.phone, reason="booking_failed"))
            alternatives = pick_closest_options(
                session.availability.options, failed, self.settings.max_buttons, exclude=[failed]
            )
            if alternatives:
                return self._offer(turn, replies.BOOKING_FAILED, alternatives)
            return _Decision(SendText(to=turn.phone, body=replies.BOOKING_FAILED))

        booking = ConfirmedBooking(
            sport=pending.sport,
            date=pending.date,
            time=pending.start,
            name=pending.name,
            last_name=pending.last_name,
            confirmed_at=self.ctx.clock()
        )
        await self.ctx.store.add_confirmed_booking(turn.phone, booking)
        logger.info(
            "booking_confirmed",
            phone=mask_phone(turn.phone),
            sport=pending.sport,
            date=pending.date,
            time=pending.start,
            court=pending.court
        )

        if not session.user.name:
            session.user.name = pending.name
            session.user.last_name = pending.last_name
        session.clear_draft()
        session.completed = True

        body = replies.booking_success(pending.sport, pending.date, pending.times, pending.name)
        return _Decision(SendText(to=turn.phone, body=body), DecisionKind.CONFIRM)

    async def _offer_after_slot_taken(self, turn: _Turn, failed_time: str) -> _Decision:
        session = turn.session
        self._drop_selection(session)
        session.availability.invalidate()
        session.waiting_for = WaitingFor.TIME

        try:
            await self._fetch_availability(session)
        except GatewayError as e:
            logger.error("availability_refetch_failed", phone=mask_phone(turn.phone), error=str(e))
            return _Decision(SendText(to=turn.phone, body=replies.BOOKING_FAILED))

        alternatives = pick_closest_options(
            session.availability.options, failed_time, self.settings.max_buttons, exclude=[failed_time]
        )
        if not alternatives:
            return self._no_availability(turn)
        return self._offer(turn, replies.slot_taken(failed_time), alternatives)

    async def _free_reply(self, turn: _Turn, now: datetime) -> _Decision:
        bookings = await self.ctx.store.get_confirmed_bookings(turn.phone)
        text = await self.ctx.responder.respond(turn.text, turn.session, bookings, now)
        return _Decision(SendText(to=turn.phone, body=text or replies.GENERIC_PROMPT), DecisionKind.REPLY)

    @staticmethod
    def _with_notice(decision: _Decision, notice: Optional[str]) -> _Decision:
        if not notice or not hasattr(decision.action, "body"):
            return decision
        body = f"{notice}\n\n{decision.action.body}"
        return _Decision(decision.action.model_copy(update={"body": body}), decision.kind)

    def _escalate_if_unsure(self, turn: _Turn, decision: _Decision) -> BaseModel:
        if decision.kind is None or isinstance(decision.action, Escalate):
            return decision.action

        session = turn.session
        interpretation = turn.interpretation or Interpretation()
        confidence = compute_confidence(
            decision.kind,
            intent=interpretation.intent,
            has_date=bool(interpretation.date or (session and session.draft.date)),
            has_sport=bool(interpretation.sport or (session and session.draft.sport)),
            reply_text=getattr(decision.action, "body", None),
            escalation_keywords=self.settings.escalation_keywords
        )
        if confidence >= self.settings.confidence_threshold:
            return decision.action

        logger.info(
            "low_confidence_escalation",
            phone=mask_phone(turn.phone),
            kind=decision.kind.value,
            confidence=confidence
        )
        return Escalate(to=turn.phone, reason="low_confidence")

    async def _finish(self, turn: _Turn, decision: _Decision) -> TurnOutcome:
        """Одна отправка, затем одно сохранение сессии"""
        action = self._escalate_if_unsure(turn, decision)
        session = turn.session

        if session is not None:
            window = self.settings.history_window
            session.remember_turn("user", turn.text, window)
            session.remember_turn("assistant", render_as_text(action), window)

        result = await self.ctx.channel_io.send(turn.sender, action, turn.token)
        if result.error == STALE_FLOW:
            return TurnOutcome(status=STALE_FLOW, action=action, send_result=result)

        if session is not None:
            session.touch()
            await self.ctx.store.save_session(session)

        return TurnOutcome(status="sent" if result.ok else result.error, action=action, send_result=result)
