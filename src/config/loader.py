# src/config/loader.py
"""
Загрузчик конфигурации проекта.
Единственный источник истины — config/config.json.
Секретные данные переопределяются из переменных окружения.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# ОПРЕДЕЛЕНИЕ ПУТЕЙ
# =============================================================================

def get_project_root() -> Path:
    """Возвращает корневую директорию проекта."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Возвращает путь к файлу конфигурации."""
    return get_project_root() / "config" / "config.json"


def load_config_json(path: Path | None = None) -> dict[str, Any]:
    """Загружает config.json и возвращает словарь без ключей-комментариев."""
    config_path = path or get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Файл конфигурации не найден: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return {k: v for k, v in data.items() if not k.startswith("_comment_")}


def _env_or(data: dict[str, Any], key: str, default: Any) -> Any:
    """Значение из окружения, затем из config.json, затем по умолчанию."""
    return os.getenv(key, data.get(key, default))


# =============================================================================
# PYDANTIC МОДЕЛИ КОНФИГУРАЦИИ
# =============================================================================

class SystemSettings(BaseModel):
    """Системные настройки."""
    PROJECT_NAME: str = "food_dispatch"
    VERSION: str = "1.0.0"
    DEBUG: bool = True
    ENVIRONMENT: str = "development"
    COMPONENT_MODE: str = "workers"


class DeploymentSettings(BaseModel):
    """Порты и хосты компонентов."""
    REALTIME_WS_GATEWAY_HOST: str = "realtime_ws_gateway"
    REALTIME_WS_GATEWAY_PORT: int = 8089
    COURIER_API_HOST: str = "courier_api"
    COURIER_API_PORT: int = 8092


class LoggingSettings(BaseModel):
    """Настройки логирования."""
    LOG_LEVEL: str = "DEBUG"
    LOG_FORMAT: str = "colored"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_MAX_BYTES: int = 10485760


class DatabaseSettings(BaseModel):
    """Настройки PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "food_dispatch"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 30

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        """Возвращает DSN для подключения к PostgreSQL."""
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    """Настройки Redis (backplane для gateway)."""
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к Redis."""
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RabbitMQSettings(BaseModel):
    """Настройки RabbitMQ и политики повторов."""
    RABBITMQ_HOST: str = "localhost"
    RABBITMQ_PORT: int = 5672
    RABBITMQ_USER: str = "guest"
    RABBITMQ_PASSWORD: str = "guest"
    RABBITMQ_VHOST: str = "/"
    RABBITMQ_PREFETCH_COUNT: int = 1
    PAYMENT_QUEUE: str = "payment_queue"
    ORDER_READY_QUEUE: str = "order_ready_queue"
    MAX_RETRIES: int = 5
    RETRY_BACKOFF_BASE_SECONDS: float = 2.0
    RETRY_BACKOFF_MAX_SECONDS: float = 60.0

    @field_validator("RABBITMQ_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает пароль из переменных окружения."""
        env_pass = os.getenv("RABBITMQ_PASSWORD", "")
        if env_pass:
            return env_pass
        return v

    @property
    def url(self) -> str:
        """Возвращает URL для подключения к RabbitMQ."""
        return (
            f"amqp://{self.RABBITMQ_USER}:{self.RABBITMQ_PASSWORD}"
            f"@{self.RABBITMQ_HOST}:{self.RABBITMQ_PORT}{self.RABBITMQ_VHOST}"
        )


class AuthSettings(BaseModel):
    """Проверка bearer-токенов сервиса идентификации."""
    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    @field_validator("JWT_SECRET", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает секрет из переменных окружения."""
        if not v:
            return os.getenv("JWT_SECRET", "")
        return v


class RealtimeSettings(BaseModel):
    """Настройки realtime gateway и клиента к нему."""
    INTERNAL_SERVICE_KEY: str = ""
    GATEWAY_URL: str = "http://localhost:8089"
    GATEWAY_TIMEOUT_SECONDS: float = 2.0
    HANDSHAKE_TIMEOUT_SECONDS: float = 10.0
    SEND_TIMEOUT_SECONDS: float = 1.0
    BACKPLANE_ENABLED: bool = False
    BACKPLANE_CHANNEL_PREFIX: str = "realtime"

    @field_validator("INTERNAL_SERVICE_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str) -> str:
        """Получает внутренний ключ из переменных окружения."""
        if not v:
            return os.getenv("INTERNAL_SERVICE_KEY", "")
        return v


class MatchingSettings(BaseModel):
    """Настройки поиска курьеров."""
    MATCHING_RADIUS_METERS: float = 500.0
    MAX_COURIERS_TO_NOTIFY: int = 50


class OrderSettings(BaseModel):
    """Настройки жизненного цикла заказа."""
    PAYMENT_WINDOW_MINUTES: int = 15


# =============================================================================
# ГЛАВНЫЙ КЛАСС НАСТРОЕК
# =============================================================================

class Settings(BaseSettings):
    """
    Главный класс настроек приложения.
    Агрегирует все секции конфигурации.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rabbitmq: RabbitMQSettings = Field(default_factory=RabbitMQSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)

    @classmethod
    def from_config_json(cls, data: dict[str, Any] | None = None) -> "Settings":
        """
        Создаёт объект Settings из config.json.
        Хосты и секреты переопределяются из переменных окружения.
        """
        d = load_config_json() if data is None else data

        return cls(
            system=SystemSettings(
                PROJECT_NAME=d.get("PROJECT_NAME", "food_dispatch"),
                VERSION=d.get("VERSION", "1.0.0"),
                DEBUG=d.get("DEBUG", True),
                ENVIRONMENT=_env_or(d, "ENVIRONMENT", "development"),
                COMPONENT_MODE=_env_or(d, "COMPONENT_MODE", "workers"),
            ),
            deployment=DeploymentSettings(
                REALTIME_WS_GATEWAY_HOST=_env_or(d, "REALTIME_WS_GATEWAY_HOST", "realtime_ws_gateway"),
                REALTIME_WS_GATEWAY_PORT=int(_env_or(d, "REALTIME_WS_GATEWAY_PORT", 8089)),
                COURIER_API_HOST=_env_or(d, "COURIER_API_HOST", "courier_api"),
                COURIER_API_PORT=int(_env_or(d, "COURIER_API_PORT", 8092)),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=_env_or(d, "LOG_LEVEL", "DEBUG"),
                LOG_FORMAT=d.get("LOG_FORMAT", "colored"),
                LOG_TO_FILE=d.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=d.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_MAX_BYTES=d.get("LOG_MAX_BYTES", 10485760),
            ),
            database=DatabaseSettings(
                DB_HOST=_env_or(d, "DB_HOST", "localhost"),
                DB_PORT=int(_env_or(d, "DB_PORT", 5432)),
                DB_NAME=_env_or(d, "DB_NAME", "food_dispatch"),
                DB_USER=_env_or(d, "DB_USER", "postgres"),
                DB_PASSWORD=_env_or(d, "DB_PASSWORD", ""),
                DB_MIN_POOL_SIZE=d.get("DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=d.get("DB_MAX_POOL_SIZE", 10),
                DB_COMMAND_TIMEOUT=d.get("DB_COMMAND_TIMEOUT", 30),
            ),
            redis=RedisSettings(
                REDIS_HOST=_env_or(d, "REDIS_HOST", "localhost"),
                REDIS_PORT=int(_env_or(d, "REDIS_PORT", 6379)),
                REDIS_DB=d.get("REDIS_DB", 0),
                REDIS_PASSWORD=_env_or(d, "REDIS_PASSWORD", ""),
            ),
            rabbitmq=RabbitMQSettings(
                RABBITMQ_HOST=_env_or(d, "RABBITMQ_HOST", "localhost"),
                RABBITMQ_PORT=int(_env_or(d, "RABBITMQ_PORT", 5672)),
                RABBITMQ_USER=_env_or(d, "RABBITMQ_USER", "guest"),
                RABBITMQ_PASSWORD=_env_or(d, "RABBITMQ_PASSWORD", "guest"),
                RABBITMQ_VHOST=d.get("RABBITMQ_VHOST", "/"),
                RABBITMQ_PREFETCH_COUNT=d.get("RABBITMQ_PREFETCH_COUNT", 1),
                PAYMENT_QUEUE=_env_or(d, "PAYMENT_QUEUE", "payment_queue"),
                ORDER_READY_QUEUE=_env_or(d, "ORDER_READY_QUEUE", "order_ready_queue"),
                MAX_RETRIES=d.get("MAX_RETRIES", 5),
                RETRY_BACKOFF_BASE_SECONDS=d.get("RETRY_BACKOFF_BASE_SECONDS", 2.0),
                RETRY_BACKOFF_MAX_SECONDS=d.get("RETRY_BACKOFF_MAX_SECONDS", 60.0),
            ),
            auth=AuthSettings(
                JWT_SECRET=_env_or(d, "JWT_SECRET", ""),
                JWT_ALGORITHM=d.get("JWT_ALGORITHM", "HS256"),
            ),
            realtime=RealtimeSettings(
                INTERNAL_SERVICE_KEY=_env_or(d, "INTERNAL_SERVICE_KEY", ""),
                GATEWAY_URL=_env_or(d, "GATEWAY_URL", "http://localhost:8089"),
                GATEWAY_TIMEOUT_SECONDS=d.get("GATEWAY_TIMEOUT_SECONDS", 2.0),
                HANDSHAKE_TIMEOUT_SECONDS=d.get("HANDSHAKE_TIMEOUT_SECONDS", 10.0),
                SEND_TIMEOUT_SECONDS=d.get("SEND_TIMEOUT_SECONDS", 1.0),
                BACKPLANE_ENABLED=d.get("BACKPLANE_ENABLED", False),
                BACKPLANE_CHANNEL_PREFIX=d.get("BACKPLANE_CHANNEL_PREFIX", "realtime"),
            ),
            matching=MatchingSettings(
                MATCHING_RADIUS_METERS=d.get("MATCHING_RADIUS_METERS", 500.0),
                MAX_COURIERS_TO_NOTIFY=d.get("MAX_COURIERS_TO_NOTIFY", 50),
            ),
            orders=OrderSettings(
                PAYMENT_WINDOW_MINUTES=d.get("PAYMENT_WINDOW_MINUTES", 15),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Возвращает синглтон настроек приложения.
    Использует кэширование для производительности.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


# Экспорт синглтона для удобного импорта
settings = get_settings()
