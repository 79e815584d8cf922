"""
Базовый абстрактный класс для бэкендов бронирования

Все интеграции с внешним источником доступности реализуют этот интерфейс
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from shared.models.booking import BookingRequest, Slot, UserProfile


class GatewayError(Exception):
    """Базовая ошибка бэкенда бронирования"""


class BackendUnavailableError(GatewayError):
    """Сетевая ошибка, таймаут, 5xx или исчерпаны попытки"""


class BackendClientError(GatewayError):
    """4xx (или неожиданный редирект) - повтор не поможет"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SlotTakenError(GatewayError):
    """Слот уже занят (ошибка приложения внутри 2xx ответа)"""


class BaseAvailabilityGateway(ABC):
    """
    Абстрактный базовый класс для всех бэкендов бронирования

    Доступность не вычисляется локально, шлюз только читает и пишет
    во внешний источник истины.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, **kwargs):
        """
        Args:
            base_url: Базовый URL API бэкенда
            token: Токен доступа (если требуется)
            **kwargs: Дополнительные параметры (специфичные для бэкенда)
        """
        self.base_url = base_url
        self.token = token
        self.config = kwargs

    @abstractmethod
    async def get_user(self, phone: str) -> UserProfile:
        """
        Профиль пользователя по телефону

        Args:
            phone: Телефон (10 цифр)

        Returns:
            UserProfile (found=False если пользователь не найден)
        """

    @abstractmethod
    async def get_available_slots(
        self,
        sport: str,
        date_str: str,
        current_hour: int = 0
    ) -> List[Slot]:
        """
        Свободные слоты на дату

        Args:
            sport: Вид спорта (имя в бэкенде)
            date_str: Дата YYYY-MM-DD
            current_hour: Текущий час, если дата сегодня, иначе 0

        Returns:
            Список слотов (корт + время)
        """

    @abstractmethod
    async def create_booking(self, request: BookingRequest) -> dict:
        """
        Подтвердить бронь

        Args:
            request: Данные брони

        Returns:
            Ответ бэкенда

        Raises:
            SlotTakenError: Слот уже занят
            GatewayError: Бронь не создана
        """

    @abstractmethod
    def get_backend_name(self) -> str:
        """Название бэкенда"""

    async def close(self):
        """Закрыть соединения"""
