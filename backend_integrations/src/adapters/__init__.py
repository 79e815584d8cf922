"""
Адаптеры бэкендов бронирования
"""

from .bubble import BubbleGateway, normalize_base_url

__all__ = ["BubbleGateway", "normalize_base_url"]
