"""
Prompt Manager Service

Собирает системные промпты интерпретатора и свободного ответа
"""

import structlog
from typing import List, Optional

from shared.models.booking import ConfirmedBooking
from shared.models.session import Session

from ..config import ClubInfo, SportConfig

logger = structlog.get_logger(__name__)

INTERPRETER_PROMPT = """Eres un extractor de datos para reservas de un club deportivo en México.
Hoy es {today} (zona horaria {timezone}).
Deportes válidos: {sports}. Deporte por defecto: {default_sport}.

Devuelve SOLO un JSON con estas llaves:
{{"intent": "book" | "info" | "other",
  "sport": string | null,
  "date": "YYYY-MM-DD" | null,
  "time": "HH:MM" (24h) | null,
  "duration": número de horas | null,
  "name": string | null,
  "last_name": string | null}}

Reglas:
- No inventes datos: si el mensaje no menciona un campo, usa null.
- "mañana" como día es el día siguiente; "en la mañana" es una franja horaria, no una fecha.
- Las horas sin am/pm se devuelven tal cual las dijo el usuario.
"""

AGENT_PROMPT = """Eres {assistant}, recepcionista amable y cálida de {club} (México).

CÓMO CONVERSAR:
- Sé amable, cálida y natural como una recepcionista real.
- Responde en español, corto (máximo 2 frases), claro y cálido.
- Usa el nombre del cliente cuando lo sepas.
- Después de responder sobre ubicación u horarios, sugiere de forma natural revisar disponibilidad.

REGLAS DURAS:
- NO repitas saludos.
- NO inventes información: solo datos del club y resultados de herramientas.
- NO respondas temas fuera del club (programación, temas técnicos o ilegales).
- Si ya hay fecha, NO la pidas otra vez. Si ya hay horarios cargados, NO los vuelvas a pedir.
- Si ya hay una reserva confirmada, no ofrezcas horarios salvo que pidan otra reserva explícitamente.

HERRAMIENTAS:
- get_user: obtener nombre del cliente por teléfono.
- get_hours: horarios disponibles por deporte y fecha.
"""


class PromptManager:
    """
    Менеджер промптов для агента

    Отвечает за:
    - Промпт извлечения сущностей (интерпретатор)
    - Промпт свободного ответа с контекстом клуба, черновика и броней
    """

    def __init__(
        self,
        club: ClubInfo,
        sports: List[SportConfig],
        default_sport: str,
        timezone: str = "America/Mexico_City"
    ):
        self.club = club
        self.sports = sports
        self.default_sport = default_sport
        self.timezone = timezone

        logger.info("prompt_manager_initialized", club=club.name, sports_count=len(sports))

    def get_interpreter_prompt(self, today: str) -> str:
        """Системный промпт интерпретатора"""
        return INTERPRETER_PROMPT.format(
            today=today,
            timezone=self.timezone,
            sports=", ".join(s.name for s in self.sports),
            default_sport=self.default_sport,
        )

    def get_agent_prompt(
        self,
        session: Optional[Session] = None,
        bookings: Optional[List[ConfirmedBooking]] = None,
        today: Optional[str] = None
    ) -> str:
        """
        Системный промпт свободного ответа

        Args:
            session: Текущая сессия
            bookings: Подтвержденные брони пользователя
            today: Текущая дата YYYY-MM-DD
        """
        prompt = AGENT_PROMPT.format(assistant=self.club.assistant_name, club=self.club.name)
        parts = [prompt, self._format_club_context()]

        if session:
            parts.append(self._format_session_context(session, today))

        if bookings:
            parts.append(self._format_bookings(bookings))

        result = "\n\n".join(parts)
        logger.debug(
            "system_prompt_generated",
            prompt_length=len(result),
            has_session_context=session is not None,
            bookings_count=len(bookings or [])
        )
        return result

    def _format_club_context(self) -> str:
        """Форматирование информации о клубе для промпта"""
        club = self.club
        parts = ["INFORMACIÓN DEL CLUB:"]
        parts.append(f"- Nombre: {club.name}")
        parts.append(f"- Dirección: {club.address}")
        parts.append(f"- Horarios: {club.opening_hours}")
        parts.append(f"- Canchas: {club.courts}")
        parts.append(f"- Instalaciones: {club.amenities}")
        parts.append(f"- Servicios: {club.services}")
        parts.append(f"- Estacionamiento: {club.parking}")
        parts.append(f"- Contacto: WhatsApp {club.whatsapp}, Instagram {club.instagram}")
        parts.append(f"- Google Maps: {club.maps_url}")
        parts.append("\nDEPORTES DISPONIBLES:")
        for sport in self.sports:
            parts.append(f"- {sport.name}")
        parts.append(f"DEPORTE POR DEFECTO: {self.default_sport}")
        return "\n".join(parts)

    def _format_session_context(self, session: Session, today: Optional[str]) -> str:
        """Форматирование контекста сессии для промпта"""
        parts = ["CONTEXTO DE LA CONVERSACIÓN:"]

        if today:
            parts.append(f"- Hoy: {today}")
        if session.display_name:
            parts.append(f"- Nombre del cliente: {session.display_name}")
        if session.draft.sport:
            parts.append(f"- Deporte: {session.draft.sport}")
        if session.draft.date:
            parts.append(f"- Fecha: {session.draft.date}")
        if session.draft.time:
            parts.append(f"- Hora deseada: {session.draft.time}")
        if session.availability.hours:
            parts.append(f"- Horarios cargados: {', '.join(session.availability.hours)}")

        return "\n".join(parts)

    def _format_bookings(self, bookings: List[ConfirmedBooking]) -> str:
        """Подтвержденные брони - чтобы не начинать бронь заново"""
        parts = ["RESERVAS CONFIRMADAS:"]
        for booking in bookings[-5:]:
            parts.append(f"- {booking.sport} el {booking.date} a las {booking.time} a nombre de {booking.name}")
        return "\n".join(parts)
