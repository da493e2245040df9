# src/core/couriers/models.py
"""
Модели курьеров. Ядро курьеров только читает.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from src.shared.models.location import GeoPoint


class Courier(BaseModel):
    """Курьер. id совпадает с ID пользователя в сервисе идентификации."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    location: GeoPoint
    is_available: bool = False
    is_verified: bool = False
    last_active_at: Optional[datetime] = None


class CourierCandidate(BaseModel):
    """Курьер в радиусе от точки выдачи."""

    courier_id: str
    distance_m: float = Field(..., ge=0.0)
