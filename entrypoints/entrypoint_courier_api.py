#!/usr/bin/env python3
"""
Entrypoint для Courier API.

Запуск:
    python entrypoints/entrypoint_courier_api.py

Порт по умолчанию: 8092
"""

import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.common.logger import setup_logging
from src.config import settings


def main() -> None:
    """Запустить Courier API."""
    setup_logging()
    uvicorn.run(
        "src.services.courier_api.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.deployment.COURIER_API_PORT,
        log_level=settings.logging.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
