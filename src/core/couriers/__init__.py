# src/core/couriers/__init__.py
"""
Курьеры: чтение доступных курьеров рядом с точкой выдачи.
"""

from src.core.couriers.geo import haversine_meters
from src.core.couriers.models import Courier, CourierCandidate
from src.core.couriers.repository import CourierRepository

__all__ = [
    "Courier",
    "CourierCandidate",
    "CourierRepository",
    "haversine_meters",
]
