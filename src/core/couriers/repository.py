# src/core/couriers/repository.py
"""
Репозиторий курьеров.

Поиск в радиусе: грубый фильтр прямоугольником в SQL (по индексу
idx_couriers_available_location), точная проверка — Haversine.
"""

from __future__ import annotations

from typing import Optional

from src.core.couriers.geo import bounding_box, haversine_meters
from src.core.couriers.models import Courier, CourierCandidate
from src.infra.database import DatabaseManager
from src.shared.models.location import GeoPoint


class CourierRepository:
    """Репозиторий курьеров."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get_by_id(self, courier_id: str) -> Optional[Courier]:
        row = await self._db.fetchrow(
            """
            SELECT id, latitude, longitude, is_available, is_verified, last_active_at
            FROM couriers
            WHERE id = $1
            """,
            courier_id,
        )
        if row is None:
            return None
        return Courier(
            id=row["id"],
            location=GeoPoint.from_lat_lon(row["latitude"], row["longitude"]),
            is_available=row["is_available"],
            is_verified=row["is_verified"],
            last_active_at=row["last_active_at"],
        )

    async def find_available_near(
        self,
        location: GeoPoint,
        radius_m: float,
        limit: int = 50,
    ) -> list[CourierCandidate]:
        """
        Доступные проверенные курьеры в радиусе radius_m, ближайшие первыми.

        Args:
            location: Точка выдачи заказа
            radius_m: Радиус поиска в метрах
            limit: Максимум курьеров в ответе
        """
        min_lat, max_lat, min_lon, max_lon = bounding_box(location.latitude, location.longitude, radius_m)

        rows = await self._db.fetch(
            """
            SELECT id, latitude, longitude
            FROM couriers
            WHERE is_available
              AND is_verified
              AND latitude BETWEEN $1 AND $2
              AND longitude BETWEEN $3 AND $4
            """,
            min_lat,
            max_lat,
            min_lon,
            max_lon,
        )

        candidates = []
        for row in rows:
            distance = haversine_meters(location.latitude, location.longitude, row["latitude"], row["longitude"])
            if distance <= radius_m:
                candidates.append(CourierCandidate(courier_id=row["id"], distance_m=round(distance, 1)))

        candidates.sort(key=lambda c: c.distance_m)
        return candidates[:limit]
