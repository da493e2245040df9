# src/infra/redis_client.py
"""
Клиент Redis для pub/sub backplane realtime gateway.
Данные в Redis не хранятся: только публикация и подписка на каналы.
"""

from __future__ import annotations

import redis.asyncio as redis
from redis.asyncio.client import PubSub

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info


class RedisClient:
    """
    Асинхронный клиент Redis.
    Реализует паттерн Singleton для пула соединений.
    """

    _instance: RedisClient | None = None
    _client: redis.Redis | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client = None

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    async def connect(self, url: str | None = None, max_connections: int = 50) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
        """
        if self._client is not None:
            return

        if url is None:
            from src.config import settings
            url = settings.redis.url

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(url, max_connections=max_connections, decode_responses=True)
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, channel: str, message: str) -> int:
        """Публикует сообщение в канал. Возвращает число получивших подписчиков."""
        return await self.client.publish(channel, message)

    def pubsub(self) -> PubSub:
        return self.client.pubsub()

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except (RuntimeError, redis.RedisError) as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> RedisClient:
    """Инициализирует подключение к Redis по настройкам из конфигурации."""
    from src.config import settings

    redis_client = get_redis()
    await redis_client.connect(url=settings.redis.url)
    await log_info(
        f"Redis подключён: {settings.redis.REDIS_HOST}:{settings.redis.REDIS_PORT}/{settings.redis.REDIS_DB}",
        type_msg=TypeMsg.INFO,
    )
    return redis_client


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
    await log_info("Redis отключён", type_msg=TypeMsg.INFO)
