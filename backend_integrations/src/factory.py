"""
Factory для создания шлюзов бэкенда бронирования
"""

from typing import Optional, Dict
from enum import Enum

from .base import BaseAvailabilityGateway


class BackendType(str, Enum):
    """Поддерживаемые бэкенды"""
    BUBBLE = "bubble"


class GatewayFactory:
    """
    Factory для создания шлюзов

    Usage:
        gateway = GatewayFactory.create(
            backend_type=BackendType.BUBBLE,
            base_url="blackpadel.com.mx",
            token="your_token"
        )
    """

    _adapters: Dict[BackendType, type] = {}

    @classmethod
    def register(cls, backend_type: BackendType, adapter_class: type):
        """
        Регистрация нового адаптера

        Args:
            backend_type: Тип бэкенда
            adapter_class: Класс адаптера
        """
        if not issubclass(adapter_class, BaseAvailabilityGateway):
            raise ValueError(f"{adapter_class} должен наследовать BaseAvailabilityGateway")

        cls._adapters[backend_type] = adapter_class

    @classmethod
    def create(
        cls,
        backend_type: BackendType,
        base_url: str,
        token: Optional[str] = None,
        **kwargs
    ) -> BaseAvailabilityGateway:
        """
        Создание шлюза

        Args:
            backend_type: Тип бэкенда
            base_url: Базовый URL
            token: Токен доступа
            **kwargs: Дополнительные параметры адаптера

        Returns:
            Экземпляр шлюза

        Raises:
            ValueError: Если тип бэкенда не зарегистрирован
        """
        try:
            backend_type = BackendType(backend_type)
        except ValueError:
            pass
        adapter_class = cls._adapters.get(backend_type)

        if not adapter_class:
            raise ValueError(
                f"Бэкенд '{backend_type}' не зарегистрирован. "
                f"Доступные: {[t.value for t in cls._adapters]}"
            )

        return adapter_class(base_url=base_url, token=token, **kwargs)

    @classmethod
    def get_available_backends(cls) -> list[BackendType]:
        """Список зарегистрированных бэкендов"""
        return list(cls._adapters.keys())


def _auto_register_adapters():
    """Регистрация встроенных адаптеров"""
    from .adapters.bubble import BubbleGateway
    GatewayFactory.register(BackendType.BUBBLE, BubbleGateway)


# Регистрируем адаптеры при импорте модуля
_auto_register_adapters()
