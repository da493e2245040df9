#!/usr/bin/env python3
# main.py
"""
Главная точка входа ядра координации заказов.
Запускает gateway, Courier API или консьюмеры очередей в зависимости от режима.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg

MODES = ("gateway", "courier_api", "payment_worker", "matching_worker", "workers")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def _serve(app_factory: str, port: int, name: str) -> None:
    """Запускает FastAPI-приложение через uvicorn."""
    import uvicorn

    await log_info(f"Запуск {name} на порту {port}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        app_factory,
        factory=True,
        host="0.0.0.0",
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info(f"{name}: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_gateway() -> None:
    """Realtime WebSocket Gateway."""
    await _serve(
        "src.services.realtime_ws.app:create_app",
        settings.deployment.REALTIME_WS_GATEWAY_PORT,
        "Realtime WebSocket Gateway",
    )


async def run_courier_api() -> None:
    """Courier API."""
    await _serve(
        "src.services.courier_api.app:create_app",
        settings.deployment.COURIER_API_PORT,
        "Courier API",
    )


async def run_consumers(kinds: tuple[str, ...]) -> None:
    from src.worker.runner import run_workers

    await run_workers(kinds=kinds, init_infra=True)


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска. Если None, берётся COMPONENT_MODE из конфига.
    """
    setup_logging()
    setup_signal_handlers()

    mode = mode or settings.system.COMPONENT_MODE
    if mode not in MODES:
        await log_error(f"Неизвестный режим '{mode}', допустимы: {', '.join(MODES)}")
        sys.exit(2)

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} — запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    if mode == "gateway":
        coro = run_gateway()
    elif mode == "courier_api":
        coro = run_courier_api()
    elif mode == "payment_worker":
        coro = run_consumers(("payment",))
    elif mode == "matching_worker":
        coro = run_consumers(("matching",))
    else:
        coro = run_consumers(("payment", "matching"))

    task = asyncio.create_task(coro)
    _running_tasks.append(task)
    try:
        await task
    except asyncio.CancelledError:
        pass
    finally:
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ядро координации выполнения заказов")
    parser.add_argument("--mode", choices=MODES, default=None, help="Компонент для запуска")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = parse_args()
    try:
        asyncio.run(main(args.mode))
    except KeyboardInterrupt:
        pass
