"""
Redis Storage для сессий диалогов и истории подтвержденных броней
"""

import json
import redis.asyncio as aioredis
from typing import List, Optional
import structlog
from pydantic import ValidationError

from shared.models.booking import ConfirmedBooking, merge_bookings
from shared.models.session import Session, migrate_session_payload
from shared.utils.text import mask_phone

logger = structlog.get_logger(__name__)


class SessionStore:
    """
    Redis хранилище для сессий диалогов

    Сессия живет session_ttl секунд простоя, история броней - отдельно
    и дольше. Ошибки Redis логируются и превращаются в None/False.
    """

    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        redis_url: Optional[str] = None,
        session_ttl: int = 1800,
        bookings_ttl: int = 30 * 24 * 3600,
        max_bookings: int = 20
    ):
        """
        Args:
            redis: Готовый async Redis клиент (общий для всех компонентов)
            redis_url: URL для ленивого подключения, если клиент не передан
            session_ttl: TTL сессии в секундах
            bookings_ttl: TTL истории броней в секундах
            max_bookings: Сколько броней хранить в истории
        """
        self.redis = redis
        self.redis_url = redis_url
        self.session_ttl = session_ttl
        self.bookings_ttl = bookings_ttl
        self.max_bookings = max_bookings
        self._initialized = redis is not None

    async def connect(self):
        """Подключение к Redis"""
        if self._initialized:
            return

        try:
            self.redis = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )

            # Проверка подключения
            await self.redis.ping()

            self._initialized = True
            logger.info("redis_connected")

        except Exception as e:
            logger.error("redis_connection_error", error=str(e), exc_info=True)
            raise

    async def disconnect(self):
        """Отключение от Redis"""
        if self.redis:
            await self.redis.aclose()
            self._initialized = False
            logger.info("redis_disconnected")

    def _get_session_key(self, user_id: str) -> str:
        """Формирует ключ для сессии в Redis"""
        return f"session:{user_id}"

    def _get_bookings_key(self, user_id: str) -> str:
        """Формирует ключ для истории броней в Redis"""
        return f"bookings:{user_id}"

    async def save_session(self, session: Session) -> bool:
        """
        Сохранить сессию в Redis

        Args:
            session: Объект сессии

        Returns:
            True если успешно сохранено
        """
        if not self._initialized:
            await self.connect()

        try:
            key = self._get_session_key(session.user_id)
            session.touch()

            # Сохраняем с TTL
            await self.redis.setex(
                key,
                session.ttl or self.session_ttl,
                session.model_dump_json()
            )

            logger.debug(
                "session_saved",
                phone=mask_phone(session.user_id),
                state=session.state.value,
                ttl=session.ttl
            )

            return True

        except Exception as e:
            logger.error(
                "session_save_error",
                phone=mask_phone(session.user_id),
                error=str(e),
                exc_info=True
            )
            return False

    async def get_session(self, user_id: str) -> Optional[Session]:
        """
        Получить сессию из Redis (с миграцией старой схемы)

        Args:
            user_id: Телефон пользователя

        Returns:
            Session или None если не найдена или повреждена
        """
        if not self._initialized:
            await self.connect()

        try:
            raw = await self.redis.get(self._get_session_key(user_id))
        except Exception as e:
            logger.error(
                "session_load_error",
                phone=mask_phone(user_id),
                error=str(e),
                exc_info=True
            )
            return None

        if not raw:
            logger.debug("session_not_found", phone=mask_phone(user_id))
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("session payload is not an object")
            data = migrate_session_payload(data)
            if not data.get("user_id"):
                data["user_id"] = user_id
            session = Session.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.warning(
                "session_discarded_invalid",
                phone=mask_phone(user_id),
                error=str(e)
            )
            return None

        logger.debug(
            "session_loaded",
            phone=mask_phone(user_id),
            state=session.state.value
        )
        return session

    async def delete_session(self, user_id: str) -> bool:
        """
        Удалить сессию

        Args:
            user_id: Телефон пользователя

        Returns:
            True если успешно удалено
        """
        if not self._initialized:
            await self.connect()

        try:
            result = await self.redis.delete(self._get_session_key(user_id))

            logger.info("session_deleted", phone=mask_phone(user_id))
            return result > 0

        except Exception as e:
            logger.error(
                "session_delete_error",
                phone=mask_phone(user_id),
                error=str(e),
                exc_info=True
            )
            return False

    async def health_check(self) -> bool:
        """
        Проверка здоровья Redis

        Returns:
            True если Redis доступен
        """
        try:
            if not self._initialized:
                await self.connect()

            await self.redis.ping()
            return True
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            return False

    # ========================================
    # CONFIRMED BOOKINGS
    # ========================================

    async def get_confirmed_bookings(self, user_id: str) -> List[ConfirmedBooking]:
        """
        История подтвержденных броней пользователя

        Returns:
            Список броней (пустой при ошибке или отсутствии)
        """
        if not self._initialized:
            await self.connect()

        try:
            raw = await self.redis.get(self._get_bookings_key(user_id))
            if not raw:
                return []
            items = json.loads(raw)
            return [ConfirmedBooking.model_validate(item) for item in items]

        except Exception as e:
            logger.error(
                "get_bookings_error",
                phone=mask_phone(user_id),
                error=str(e)
            )
            return []

    async def add_confirmed_booking(self, user_id: str, booking: ConfirmedBooking) -> bool:
        """
        Добавить бронь в историю (дедупликация по ключу, ограничение длины)

        Returns:
            True если успешно сохранено
        """
        existing = await self.get_confirmed_bookings(user_id)
        merged = merge_bookings(existing, [booking], cap=self.max_bookings)

        try:
            payload = json.dumps(
                [b.model_dump(mode="json") for b in merged],
                ensure_ascii=False
            )
            await self.redis.setex(self._get_bookings_key(user_id), self.bookings_ttl, payload)

            logger.info(
                "confirmed_booking_recorded",
                phone=mask_phone(user_id),
                sport=booking.sport,
                date=booking.date,
                time=booking.time,
                total=len(merged)
            )
            return True

        except Exception as e:
            logger.error(
                "add_booking_error",
                phone=mask_phone(user_id),
                error=str(e)
            )
            return False

    async def clear_confirmed_bookings(self, user_id: str) -> bool:
        """
        Очистить историю броней

        Returns:
            True если успешно очищено
        """
        if not self._initialized:
            await self.connect()

        try:
            await self.redis.delete(self._get_bookings_key(user_id))

            logger.info("bookings_cleared", phone=mask_phone(user_id))
            return True

        except Exception as e:
            logger.error(
                "clear_bookings_error",
                phone=mask_phone(user_id),
                error=str(e)
            )
            return False
