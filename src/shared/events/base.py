# src/shared/events/base.py
"""
Конверт события — единственная форма данных, пересекающая границы сервисов.

Формат на проводе (JSON):
    {"type": "<TAG>", "data": {...}, "timestamp": "<ISO-8601>"}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventTags:
    """Теги событий, которые принимает и публикует ядро."""
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS"
    ORDER_READY_FOR_PICKUP = "ORDER_READY_FOR_PICKUP"
    # Старый тег сервиса ресторанов
    ORDER_READY_FOR_RIDER = "ORDER_READY_FOR_RIDER"


class Envelope(BaseModel):
    """
    Базовый конверт события.

    Продюсеры могут не передавать timestamp — тогда он проставляется
    при разборе.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: str
    data: Any = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    def to_json(self) -> bytes:
        """Сериализует конверт в JSON (ключи данных — в camelCase)."""
        return self.model_dump_json(by_alias=True).encode("utf-8")
