"""
Configuration management для Booking Agent

Использует pydantic-settings для валидации и работы с .env файлами
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class SportConfig(BaseModel):
    """Вид спорта клуба"""
    name: str
    keywords: List[str] = Field(default_factory=list)
    api_name: Optional[str] = None
    default: bool = False

    @property
    def backend_name(self) -> str:
        return self.api_name or self.name


class ClubInfo(BaseModel):
    """Справочная информация о клубе (для canned-ответов и промптов)"""
    name: str = "Black Padel & Pickleball"
    address: str = "P.º de los Sauces Manzana 007, San Gaspar Tlahuelilpan, Estado de México, CP 52147"
    address_short: str = "San Gaspar Tlahuelilpan, Estado de México"
    maps_url: str = "https://maps.app.goo.gl/7rVpWz5benMH9fHu5"
    latitude: float = 19.5256
    longitude: float = -99.2325
    parking: str = "Estacionamiento gratuito disponible dentro y fuera del club"
    phone: str = "+52 56 5440 7815"
    whatsapp: str = "+52 56 5440 7815"
    email: str = "hola@blackpadel.com.mx"
    website: str = "https://blackpadel.com.mx"
    instagram: str = "@blackpadelandpickleball"
    opening_hours: str = "Lunes a viernes de 7:00 a 22:00, Sábado y domingo de 8:00 a 15:00"
    courts: str = "2 canchas de Padel techadas, 2 canchas de Pickleball techadas, 1 simulador de Golf"
    amenities: str = "Baños, vestidores, tienda, bar, mesas, estacionamiento, WiFi"
    services: str = "Reservas, clases, torneos, ligas, renta de equipo"
    assistant_name: str = "Michelle"


def _default_sports() -> List[SportConfig]:
    return [
        SportConfig(name="Padel", keywords=["padel", "paddle"], api_name="Padel", default=True),
        SportConfig(name="Pickleball", keywords=["pickleball", "pickle"], api_name="Pickleball"),
        SportConfig(name="Golf", keywords=["golf", "simulador"], api_name="Golf"),
    ]


class Settings(BaseSettings):
    """Настройки Booking Agent"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Backend (Bubble workflow API)
    backend_type: str = Field(default="bubble", description="Тип бэкенда бронирования")
    backend_base_url: str = Field(default="", description="Base URL бэкенда")
    backend_token: Optional[str] = Field(default=None, description="Bearer токен бэкенда")
    confirm_endpoint: str = Field(default="confirm_reserva", description="Workflow подтверждения брони")
    backend_timeout: float = Field(default=10.0, gt=0, description="Таймаут HTTP запроса в секундах")
    backend_max_attempts: int = Field(default=3, ge=1)
    backend_retry_base_delay: float = Field(default=0.1, ge=0, description="Базовая задержка backoff")

    # Interpreter / LLM
    interpreter_backend: str = Field(default="rules", description="rules или gemini")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API Key")
    gemini_model: str = Field(default="gemini-2.0-flash", description="Модель Gemini")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0, description="Temperature для LLM")
    max_tokens: int = Field(default=1024, description="Максимум токенов в ответе")
    llm_timeout: float = Field(default=15.0, gt=0, description="Таймаут вызова LLM в секундах")
    max_tool_iterations: int = Field(default=4, ge=1, description="Лимит итераций function calling")

    # Redis
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_password: Optional[str] = Field(default=None)
    redis_db: int = Field(default=0)

    # TTLs
    session_ttl: int = Field(default=1800, description="TTL сессии в секундах")
    dedup_ttl: int = Field(default=86400, description="TTL маркера обработанного сообщения")
    flow_token_ttl: int = Field(default=86400, description="TTL flow-токена")
    bookings_ttl: int = Field(default=30 * 24 * 3600, description="TTL истории подтвержденных броней")
    max_confirmed_bookings: int = Field(default=20, ge=1)
    history_window: int = Field(default=12, description="Сколько реплик хранить в истории диалога")

    # Dialogue
    timezone: str = Field(default="America/Mexico_City")
    default_sport: str = Field(default="Padel")
    max_buttons: int = Field(default=3, ge=1, description="Максимум кнопок в сообщении")
    max_duration: int = Field(default=3, ge=1, description="Максимальная длительность брони в часах")
    list_max_rows: int = Field(default=10, ge=1)
    confidence_threshold: float = Field(default=0.45, ge=0.0, le=1.0)
    max_booking_failures: int = Field(default=2, ge=1)
    escalation_keywords: List[str] = Field(default_factory=lambda: [
        "dame un momento para revisar",
        "déjame verificar eso",
        "voy a revisar",
        "necesito consultar",
    ])
    courtesy_phrases: List[str] = Field(default_factory=lambda: [
        "gracias", "muchas gracias", "mil gracias", "ok", "okei",
        "vale", "perfecto", "super", "genial", "listo",
    ])
    sports: List[SportConfig] = Field(default_factory=_default_sports)
    club: ClubInfo = Field(default_factory=ClubInfo)

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="json или text")

    # API
    agent_host: str = Field(default="0.0.0.0")
    agent_port: int = Field(default=8001)
    whatsapp_verify_token: Optional[str] = Field(default=None)

    @property
    def redis_url(self) -> str:
        """Формирует Redis URL"""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    def default_sport_name(self) -> str:
        """Вид спорта по умолчанию: помеченный default, иначе default_sport"""
        for sport in self.sports:
            if sport.default:
                return sport.name
        return self.default_sport


# Global settings instance
settings = Settings()
