# src/worker/base.py
"""
Базовый класс для консьюмеров очередей.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Optional

from src.common.constants import AckDecision, TypeMsg
from src.common.logger import log_info
from src.infra.event_bus import EventBus, get_event_bus
from src.shared.events import parse_envelope


class BaseWorker(ABC):
    """
    Базовый класс для всех консьюмеров.

    Читает одну рабочую очередь и на каждое сообщение возвращает явное
    решение AckDecision. Исключения обработчика не перехватываются здесь:
    EventBus переводит их в повторную доставку или dead-letter.
    """

    def __init__(self, event_bus: Optional[EventBus] = None) -> None:
        self.event_bus = event_bus or get_event_bus()
        self._task: Optional[asyncio.Task] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""
        pass

    @property
    @abstractmethod
    def queue_name(self) -> str:
        """Рабочая очередь."""
        pass

    @abstractmethod
    async def handle(self, envelope: Any) -> AckDecision:
        """
        Обрабатывает конверт. Должен быть идемпотентным:
        одно и то же сообщение может прийти несколько раз.
        """
        pass

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Запускает цикл чтения очереди в фоновой задаче."""
        if self.is_running:
            return

        await log_info(f"Воркер {self.name} запускается (очередь {self.queue_name})...", type_msg=TypeMsg.INFO)
        self._task = asyncio.create_task(
            self.event_bus.consume(self.queue_name, self._on_envelope, parse_envelope),
            name=self.name,
        )

    async def stop(self) -> None:
        """Останавливает воркер."""
        if self._task is None:
            return

        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def wait(self) -> None:
        """Ждёт завершения цикла чтения (ошибка соединения пробрасывается)."""
        if self._task is not None:
            await self._task

    async def _on_envelope(self, envelope: Any) -> AckDecision:
        await log_info(
            f"Воркер {self.name} получил {envelope.type}",
            type_msg=TypeMsg.DEBUG,
        )
        decision = await self.handle(envelope)
        await log_info(f"Воркер {self.name}: {envelope.type} → {decision.value}", type_msg=TypeMsg.DEBUG)
        return decision
