"""
Тексты ответов пользователю (испанский, Мексика)
"""

from datetime import date
from typing import List, Optional

from ..config import ClubInfo

_MONTH_NAMES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

RESET_ACK = "Listo, reinicié la conversación."
PLEASE_REPEAT = "Perdón, no pude procesar tu mensaje. ¿Me lo repites, por favor?"
ASK_DATE = "¿Para qué fecha quieres reservar?"
ASK_NAME = "¿A nombre de quién hago la reserva?"
ASK_OTHER_TIME = "Sin problema. ¿Qué otra hora te gustaría?"
CONFIRM_YES = "Sí, confirmar"
CONFIRM_NO = "No"
BOOKING_FAILED = "No pude completar la reserva en este momento. ¿Quieres intentar con otra hora?"
GENERIC_PROMPT = "Puedo ayudarte a reservar una cancha o resolver dudas del club. ¿Qué necesitas?"


def format_date_es(date_str: Optional[str]) -> str:
    """"2026-10-17" -> "17 de octubre de 2026" """
    if not date_str:
        return ""
    try:
        parsed = date.fromisoformat(date_str[:10])
    except ValueError:
        return date_str
    return f"{parsed.day} de {_MONTH_NAMES[parsed.month - 1]} de {parsed.year}"


def format_time_range(times: List[str]) -> str:
    if not times:
        return ""
    if len(times) == 1:
        return times[0]
    return f"{times[0]} a {times[-1]}"


def greeting(name: Optional[str], club: ClubInfo) -> str:
    if name:
        return f"¡Hola, {name}! Soy {club.assistant_name} de {club.name}. ¿Quieres reservar una cancha?"
    return f"¡Hola! Soy {club.assistant_name} de {club.name}. ¿Quieres reservar una cancha?"


def courtesy(name: Optional[str]) -> str:
    suffix = f", {name}" if name else ""
    return f"¡Con gusto{suffix}! Aquí estoy si necesitas algo más."


def ask_sport(sports: List[str]) -> str:
    return f"¿Qué deporte quieres jugar: {', '.join(sports)}?"


def no_availability(sport: str, date_str: str) -> str:
    return (
        f"No hay disponibilidad de {sport} para el {format_date_es(date_str)}. "
        "¿Quieres probar otra fecha?"
    )


def offer_times(sport: str, date_str: str, duration: int) -> str:
    hours = "1 hora" if duration == 1 else f"{duration} horas"
    return f"Para {sport} el {format_date_es(date_str)} ({hours}) tengo estos horarios. ¿Cuál prefieres?"


def time_not_available(time_str: str) -> str:
    return f"Las {time_str} no están disponibles. Te propongo estas opciones cercanas:"


def slot_taken(time_str: str) -> str:
    return f"Lo siento, las {time_str} se acaban de ocupar. Estas opciones siguen disponibles:"


def duration_clamped(requested: int, maximum: int) -> str:
    return f"El máximo por reserva es de {maximum} horas, así que busqué {maximum} horas en lugar de {requested}."


def confirm_booking(sport: str, date_str: str, times: List[str], name: str, last_name: Optional[str]) -> str:
    full_name = f"{name} {last_name}" if last_name else name
    return (
        f"¿Confirmo {sport} el {format_date_es(date_str)} de {format_time_range(times)} "
        f"a nombre de {full_name}?"
    )


def booking_success(sport: str, date_str: str, times: List[str], name: str) -> str:
    return (
        f"¡Listo, {name}! Tu reserva de {sport} quedó confirmada para el "
        f"{format_date_es(date_str)} de {format_time_range(times)}. ¡Te esperamos!"
    )


def opening_hours(club: ClubInfo) -> str:
    return f"Nuestro horario es: {club.opening_hours}. ¿Quieres revisar disponibilidad?"


def prices(club: ClubInfo) -> str:
    return (
        f"Para precios y promociones te atiende el equipo del club por WhatsApp al {club.whatsapp}. "
        "¿Te ayudo a revisar disponibilidad?"
    )


def late_arrival(club: ClubInfo) -> str:
    return (
        "Si llegas tarde, tu reserva se mantiene hasta la hora de término; no podemos extender el tiempo "
        f"si hay otra reserva después. Para casos especiales escribe al {club.whatsapp}."
    )


def assistant_name(club: ClubInfo) -> str:
    return f"Soy {club.assistant_name}, recepcionista de {club.name}. ¿En qué te ayudo?"


def club_info(club: ClubInfo) -> str:
    return (
        f"{club.name}: {club.courts}. Instalaciones: {club.amenities}. "
        f"Servicios: {club.services}. ¿Te gustaría reservar una cancha?"
    )
