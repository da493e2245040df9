# src/worker/runner.py
"""
Запускалка консьюмеров очередей.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.core.couriers.repository import CourierRepository
from src.core.notifications.gateway_client import GatewayClient
from src.core.orders.repository import OrderRepository
from src.infra.database import close_db, get_db, init_db
from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
from src.worker.base import BaseWorker
from src.worker.matching import CourierMatchingWorker
from src.worker.payment import PaymentSettlementWorker

WORKER_KINDS = ("payment", "matching")


def build_workers(kinds: Iterable[str], gateway: GatewayClient) -> List[BaseWorker]:
    """Создаёт воркеры по списку видов: payment, matching."""
    db = get_db()
    orders = OrderRepository(db)
    workers: List[BaseWorker] = []

    for kind in kinds:
        if kind == "payment":
            workers.append(PaymentSettlementWorker(orders, gateway, event_bus=get_event_bus()))
        elif kind == "matching":
            workers.append(CourierMatchingWorker(orders, CourierRepository(db), gateway, event_bus=get_event_bus()))
        else:
            raise ValueError(f"Неизвестный вид воркера: {kind}")
    return workers


async def run_workers(kinds: Iterable[str] = WORKER_KINDS, init_infra: bool = True) -> None:
    """
    Запускает консьюмеры и ждёт остановки.

    Args:
        kinds: Какие консьюмеры запускать
        init_infra: Если True, инициализирует и закрывает БД и RabbitMQ сам.
                    При запуске из main.py инфраструктура уже инициализирована.
    """
    kinds = tuple(kinds)
    await log_info(f"Запуск воркеров: {', '.join(kinds)}", type_msg=TypeMsg.INFO)

    if init_infra:
        await init_db()
        await init_event_bus()

    gateway = GatewayClient()
    workers = build_workers(kinds, gateway)

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено {len(workers)} воркеров", type_msg=TypeMsg.INFO)

        # Цикл чтения завершается только ошибкой соединения или отменой
        await asyncio.gather(*(worker.wait() for worker in workers))

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка воркеров: {e}", exc_info=True)
        raise
    finally:
        for worker in workers:
            await worker.stop()
        await gateway.close()

        if init_infra:
            await close_event_bus()
            await close_db()

        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)


def main() -> None:
    """Точка входа."""
    try:
        asyncio.run(run_workers())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
