#!/usr/bin/env python3
"""
Entrypoint для консьюмера подтверждения оплаты (PAYMENT_QUEUE).

Запуск:
    python entrypoints/entrypoint_payment_worker.py
"""

import asyncio
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from src.common.logger import setup_logging
from src.worker.runner import run_workers


def main() -> None:
    setup_logging()
    try:
        asyncio.run(run_workers(kinds=("payment",)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
