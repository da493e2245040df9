# src/infra/event_bus.py
"""
Клиент долговечных очередей на базе RabbitMQ.

- publish(queue, envelope): persistent-сообщение с publisher confirms —
  возврат только после того, как брокер принял сообщение;
- consume(queue, handler): цикл чтения, обработчик возвращает явное
  решение AckDecision, которое применяется к сообщению.

Топология на каждую рабочую очередь:
    <queue>        — рабочая, DLX → <queue>.dlq
    <queue>.retry  — отложенные повторы (TTL на сообщение), DLX → <queue>
    <queue>.dlq    — dead-letter, ручной разбор оператором

Доставка at-least-once: падение до ack приводит к повторной доставке,
обработчики обязаны быть идемпотентными. Порядок не гарантируется.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol
from uuid import uuid4

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection

from src.common.constants import RETRY_COUNT_HEADER, AckDecision, TypeMsg
from src.common.exceptions import BrokerUnavailable, DataIntegrityViolation, MalformedEnvelope, StorageUnavailable
from src.common.logger import log_error, log_info
from src.shared.events.base import Envelope

# Тип обработчика: конверт → решение по сообщению
EnvelopeHandler = Callable[[Any], Awaitable[AckDecision]]
EnvelopeParser = Callable[[bytes], Envelope]


def retry_queue_name(queue_name: str) -> str:
    return f"{queue_name}.retry"


def dead_letter_queue_name(queue_name: str) -> str:
    return f"{queue_name}.dlq"


@dataclass
class RetryPolicy:
    """Политика отложенных повторов: экспоненциальная задержка с потолком."""
    max_retries: int = 5
    backoff_base_seconds: float = 2.0
    backoff_max_seconds: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """Задержка перед попыткой с номером attempt (с нуля)."""
        return min(self.backoff_base_seconds * (2 ** attempt), self.backoff_max_seconds)

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.max_retries


class DeadLetterEscalation(Protocol):
    """Контракт эскалации сообщений, ушедших в dead-letter."""

    async def escalate(self, queue_name: str, body: bytes, reason: str) -> None:
        ...


class LoggingEscalation:
    """Эскалация по умолчанию: CRITICAL-запись в лог с телом сообщения."""

    async def escalate(self, queue_name: str, body: bytes, reason: str) -> None:
        await log_info(
            f"Сообщение перемещено в {dead_letter_queue_name(queue_name)}: {reason}",
            type_msg=TypeMsg.CRITICAL,
            extra={"queue": queue_name, "body": body.decode("utf-8", errors="replace")[:2000]},
        )


def _retry_count(message: AbstractIncomingMessage) -> int:
    headers = message.headers or {}
    try:
        return int(headers.get(RETRY_COUNT_HEADER, 0))
    except (TypeError, ValueError):
        return 0


class EventBus:
    """
    Клиент RabbitMQ: публикация и потребление конвертов.

    Singleton на процесс; каждый экземпляр консьюмера — отдельный процесс,
    брокер распределяет сообщения между ними (competing consumers).
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queues: dict[str, AbstractQueue] = {}
        self.retry_policy = RetryPolicy()
        self.escalation: DeadLetterEscalation = LoggingEscalation()

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    @property
    def channel(self) -> AbstractChannel:
        if not self.is_connected or self._channel is None:
            raise BrokerUnavailable("Нет соединения с RabbitMQ")
        return self._channel

    async def connect(
        self,
        url: str | None = None,
        prefetch_count: int = 1,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """
        Подключается к RabbitMQ.

        Args:
            url: URL RabbitMQ (если None, берётся из конфига)
            prefetch_count: Сколько неподтверждённых сообщений держит консьюмер
            retry_policy: Политика отложенных повторов
        """
        if self.is_connected:
            return

        if url is None:
            from src.config import settings
            url = settings.rabbitmq.url
            prefetch_count = settings.rabbitmq.RABBITMQ_PREFETCH_COUNT
            retry_policy = retry_policy or RetryPolicy(
                max_retries=settings.rabbitmq.MAX_RETRIES,
                backoff_base_seconds=settings.rabbitmq.RETRY_BACKOFF_BASE_SECONDS,
                backoff_max_seconds=settings.rabbitmq.RETRY_BACKOFF_MAX_SECONDS,
            )

        if retry_policy is not None:
            self.retry_policy = retry_policy

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        # publisher_confirms: publish() ждёт подтверждения брокера
        self._channel = await self._connection.channel(publisher_confirms=True)
        await self._channel.set_qos(prefetch_count=prefetch_count)

        await log_info("Подключение к RabbitMQ установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._queues = {}
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def declare_queue(self, queue_name: str) -> AbstractQueue:
        """Объявляет рабочую очередь вместе с очередями повторов и dead-letter."""
        if queue_name in self._queues:
            return self._queues[queue_name]

        channel = self.channel
        dlq = dead_letter_queue_name(queue_name)

        await channel.declare_queue(dlq, durable=True)
        await channel.declare_queue(
            retry_queue_name(queue_name),
            durable=True,
            arguments={
                "x-dead-letter-exchange": "",
                "x-dead-letter-routing-key": queue_name,
            },
        )
        queue = await channel.declare_queue(
            queue_name,
            durable=True,
            arguments={
                "x-dead-letter-exchange": "",
                "x-dead-letter-routing-key": dlq,
            },
        )

        self._queues[queue_name] = queue
        return queue

    async def publish(self, queue_name: str, envelope: Envelope) -> None:
        """
        Публикует конверт в очередь.

        Raises:
            BrokerUnavailable: Нет соединения или брокер не подтвердил приём
        """
        channel = self.channel
        await self.declare_queue(queue_name)

        message = Message(
            body=envelope.to_json(),
            content_type="application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=str(uuid4()),
            timestamp=datetime.now(timezone.utc),
            type=envelope.type,
        )

        try:
            await channel.default_exchange.publish(message, routing_key=queue_name)
        except aio_pika.exceptions.AMQPError as e:
            raise BrokerUnavailable(f"Публикация {envelope.type} в {queue_name} не подтверждена: {e}") from e

        await log_info(f"Событие {envelope.type} опубликовано в {queue_name}", type_msg=TypeMsg.DEBUG)

    async def consume(
        self,
        queue_name: str,
        handler: EnvelopeHandler,
        parser: EnvelopeParser,
    ) -> None:
        """
        Цикл чтения очереди: одно сообщение за раз, явное решение по каждому.
        Завершается отменой задачи.

        Args:
            queue_name: Рабочая очередь
            handler: Обработчик конверта, возвращает AckDecision
            parser: Разбор тела сообщения в типизированный конверт
        """
        queue = await self.declare_queue(queue_name)
        await log_info(f"Чтение очереди {queue_name}", type_msg=TypeMsg.INFO)

        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                await self.process_message(queue_name, message, handler, parser)

    async def process_message(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        handler: EnvelopeHandler,
        parser: EnvelopeParser,
    ) -> AckDecision:
        """Разбирает сообщение, вызывает обработчик и применяет решение."""
        reason = ""
        try:
            envelope = parser(message.body)
        except MalformedEnvelope as e:
            await log_error(f"Отклонён невалидный конверт из {queue_name}: {e}")
            decision, reason = AckDecision.DEAD_LETTER, str(e)
        else:
            try:
                decision = await handler(envelope)
            except StorageUnavailable as e:
                await log_info(f"Хранилище недоступно, сообщение вернётся в очередь: {e}", type_msg=TypeMsg.WARNING)
                decision = AckDecision.REQUEUE
            except DataIntegrityViolation as e:
                decision, reason = AckDecision.DEAD_LETTER, str(e)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await log_error(f"Ошибка обработчика {queue_name}: {e}", exc_info=True)
                decision, reason = AckDecision.RETRY_LATER, f"ошибка обработчика: {e}"

        await self.apply_decision(queue_name, message, decision, reason)
        return decision

    async def apply_decision(
        self,
        queue_name: str,
        message: AbstractIncomingMessage,
        decision: AckDecision,
        reason: str = "",
    ) -> None:
        """Применяет решение обработчика к сообщению."""
        match decision:
            case AckDecision.ACK:
                await message.ack()
            case AckDecision.REQUEUE:
                await message.nack(requeue=True)
            case AckDecision.RETRY_LATER:
                await self._retry_later(queue_name, message, reason)
            case AckDecision.DEAD_LETTER:
                await self._dead_letter(queue_name, message, reason or "отклонено обработчиком")

    async def _retry_later(self, queue_name: str, message: AbstractIncomingMessage, reason: str) -> None:
        attempt = _retry_count(message)
        if self.retry_policy.exhausted(attempt):
            await self._dead_letter(
                queue_name,
                message,
                f"исчерпано {attempt} повторов" + (f" ({reason})" if reason else ""),
            )
            return

        delay = self.retry_policy.delay_for(attempt)
        headers = dict(message.headers or {})
        headers[RETRY_COUNT_HEADER] = attempt + 1

        retry_message = Message(
            body=message.body,
            headers=headers,
            content_type=message.content_type or "application/json",
            delivery_mode=DeliveryMode.PERSISTENT,
            message_id=message.message_id,
            type=message.type,
            expiration=delay,
        )
        # Копия уходит в retry-очередь до ack оригинала: при падении между
        # шагами возможен дубль, но не потеря
        await self.channel.default_exchange.publish(retry_message, routing_key=retry_queue_name(queue_name))
        await message.ack()

        await log_info(
            f"Повтор {attempt + 1}/{self.retry_policy.max_retries} для {queue_name} через {delay:.1f} с",
            type_msg=TypeMsg.DEBUG,
        )

    async def _dead_letter(self, queue_name: str, message: AbstractIncomingMessage, reason: str) -> None:
        await message.reject(requeue=False)
        await self.escalation.escalate(queue_name, message.body, reason)


# Глобальный экземпляр
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Возвращает глобальный экземпляр EventBus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def init_event_bus() -> EventBus:
    """Инициализирует подключение к RabbitMQ по настройкам из конфигурации."""
    from src.config import settings

    event_bus = get_event_bus()
    await event_bus.connect()
    await log_info(
        f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )
    return event_bus


async def close_event_bus() -> None:
    """Закрывает подключение к RabbitMQ."""
    await get_event_bus().disconnect()
    await log_info("RabbitMQ отключён", type_msg=TypeMsg.INFO)
