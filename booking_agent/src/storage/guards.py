"""
Guards поверх общего Redis: дедупликация сообщений и flow-токены
"""

import uuid
import redis.asyncio as aioredis
from typing import Optional
import structlog

from shared.utils.text import mask_phone

logger = structlog.get_logger(__name__)


class MessageDedupGuard:
    """
    Идемпотентность по ID входящего сообщения

    SET msg:{id} 1 NX EX ttl - первый записавший выигрывает.
    """

    def __init__(self, redis: aioredis.Redis, ttl: int = 86400):
        self.redis = redis
        self.ttl = ttl

    async def mark_processed(self, message_id: Optional[str]) -> bool:
        """
        Отметить сообщение как обработанное

        Args:
            message_id: ID сообщения транспорта (может отсутствовать)

        Returns:
            True если сообщение видим впервые (или ID нет, или Redis недоступен)
        """
        if not message_id:
            return True

        try:
            created = await self.redis.set(f"msg:{message_id}", "1", nx=True, ex=self.ttl)
        except Exception as e:
            logger.error("dedup_check_error", message_id=message_id, error=str(e))
            return True

        if not created:
            logger.info("duplicate_message_skipped", message_id=message_id)
            return False
        return True


class FlowTokenGuard:
    """
    Flow-токен пользователя

    Новый токен после reset делает недействительными все ответы,
    посчитанные под старым токеном.
    """

    def __init__(self, redis: aioredis.Redis, ttl: int = 86400):
        self.redis = redis
        self.ttl = ttl

    def _key(self, user_id: str) -> str:
        return f"flow:{user_id}"

    async def current(self, user_id: str) -> Optional[str]:
        """Текущий токен (None если нет или Redis недоступен)"""
        try:
            return await self.redis.get(self._key(user_id))
        except Exception as e:
            logger.error("flow_token_read_error", phone=mask_phone(user_id), error=str(e))
            return None

    async def ensure_token(self, user_id: str) -> Optional[str]:
        """
        Текущий токен, создает новый если его нет

        Returns:
            Токен или None если Redis недоступен
        """
        try:
            token = str(uuid.uuid4())
            created = await self.redis.set(self._key(user_id), token, nx=True, ex=self.ttl)
            if created:
                logger.debug("flow_token_created", phone=mask_phone(user_id))
                return token
            return await self.redis.get(self._key(user_id))
        except Exception as e:
            logger.error("flow_token_ensure_error", phone=mask_phone(user_id), error=str(e))
            return None

    async def reset(self, user_id: str) -> Optional[str]:
        """
        Выпустить новый токен

        Returns:
            Новый токен или None если Redis недоступен
        """
        token = str(uuid.uuid4())
        try:
            await self.redis.set(self._key(user_id), token, ex=self.ttl)
        except Exception as e:
            logger.error("flow_token_reset_error", phone=mask_phone(user_id), error=str(e))
            return None

        logger.info("flow_token_reset", phone=mask_phone(user_id))
        return token

    async def is_current(self, user_id: str, token: Optional[str]) -> bool:
        """
        Токен все еще актуален

        Ошибка чтения или отсутствие токена не блокирует отправку.
        """
        if not token:
            return True
        current = await self.current(user_id)
        if current is None:
            return True
        return current == token
