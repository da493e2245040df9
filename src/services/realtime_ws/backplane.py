# src/services/realtime_ws/backplane.py
"""
Backplane на Redis Pub/Sub для нескольких экземпляров gateway.

Каждое событие публикуется в канал <prefix>:room:<room>. Экземпляр
подписан только на каналы комнат, где у него есть локальные участники,
и пересылает полученные события в свой реестр комнат.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis.exceptions import RedisError

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.infra.redis_client import RedisClient
from src.services.realtime_ws.connection_manager import RoomRegistry


class RedisBackplane:
    """
    Подписчик и публикатор Redis Pub/Sub.

    Подписки следуют за реестром: первая локальная сессия в комнате —
    subscribe, уход последней — unsubscribe.
    """

    def __init__(
        self,
        redis: RedisClient,
        registry: RoomRegistry,
        prefix: str = "realtime",
    ) -> None:
        """
        Args:
            redis: Клиент Redis
            registry: Локальный реестр комнат
            prefix: Префикс каналов
        """
        self._redis = redis
        self._registry = registry
        self._prefix = prefix
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._channels: set[str] = set()
        # Комнаты, подписка которых не удалась; повторяется в цикле чтения
        self._pending: set[str] = set()

    def channel_for(self, room: str) -> str:
        return f"{self._prefix}:room:{room}"

    def room_from_channel(self, channel: str) -> Optional[str]:
        marker = f"{self._prefix}:room:"
        if not channel.startswith(marker):
            return None
        return channel[len(marker):]

    async def start(self) -> None:
        """Запустить подписчика и привязаться к реестру комнат."""
        if self._running:
            return

        self._pubsub = self._redis.pubsub()
        self._running = True

        self._registry.on_room_opened = self.subscribe_room
        self._registry.on_room_closed = self.unsubscribe_room
        for room in self._registry.local_rooms():
            await self.subscribe_room(room)

        self._task = asyncio.create_task(self._listen())
        await log_info(f"Backplane запущен (префикс {self._prefix})", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Остановить подписчика."""
        self._running = False
        self._registry.on_room_opened = None
        self._registry.on_room_closed = None

        if self._task:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        if self._pubsub:
            if self._channels:
                await self._pubsub.unsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        self._channels.clear()
        self._pending.clear()

    async def subscribe_room(self, room: str) -> None:
        """
        Подписаться на канал комнаты. Ошибка Redis не мешает локальному
        членству: подписка повторяется из цикла чтения.
        """
        channel = self.channel_for(room)
        if self._pubsub and channel not in self._channels:
            try:
                await self._pubsub.subscribe(channel)
            except RedisError as e:
                await log_warning(f"Backplane: подписка на {channel} не удалась: {e}")
                self._pending.add(room)
                return
            self._channels.add(channel)
        self._pending.discard(room)

    async def unsubscribe_room(self, room: str) -> None:
        self._pending.discard(room)
        channel = self.channel_for(room)
        if self._pubsub and channel in self._channels:
            self._channels.discard(channel)
            try:
                await self._pubsub.unsubscribe(channel)
            except RedisError as e:
                await log_warning(f"Backplane: отписка от {channel} не удалась: {e}")

    async def health_check(self) -> bool:
        """Доступен ли Redis для публикации."""
        return await self._redis.health_check()

    async def publish(self, room: str, event: str, payload: dict[str, Any]) -> int:
        """
        Публикует событие для всех экземпляров, включая текущий.
        Если Redis недоступен, событие доставляется только локально.

        Returns:
            Число экземпляров, получивших событие (0 при локальной доставке)
        """
        message = json.dumps({"room": room, "event": event, "payload": payload})
        try:
            return await self._redis.publish(self.channel_for(room), message)
        except RedisError as e:
            await log_warning(f"Backplane недоступен, доставка только локально ({room}): {e}")
            await self._registry.emit_to_room(room, event, payload)
            return 0

    async def _listen(self) -> None:
        """Слушать сообщения из Redis."""
        while self._running:
            if self._pending:
                await self._retry_pending()
            if not self._channels:
                await asyncio.sleep(0.5)
                continue
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue
                await self._process_message(message)
            except RedisError as e:
                await log_error(f"Ошибка подписчика backplane: {e}")
                await asyncio.sleep(1)

    async def _retry_pending(self) -> None:
        for room in list(self._pending):
            if self._registry.has_room(room):
                await self.subscribe_room(room)
            else:
                self._pending.discard(room)

    async def _process_message(self, message: dict[str, Any]) -> None:
        """Обработать сообщение из Redis."""
        if message.get("type") != "message":
            return

        channel = message.get("channel", "")
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        room = self.room_from_channel(channel)
        if room is None:
            return

        data = message.get("data", "")
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            parsed = json.loads(data)
            event = parsed["event"]
        except (json.JSONDecodeError, KeyError, TypeError):
            await log_warning(f"Backplane: некорректное сообщение в {channel}")
            return

        await self._registry.emit_to_room(room, event, parsed.get("payload") or {})
