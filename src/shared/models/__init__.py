# src/shared/models/__init__.py
"""
Общие DTO и Pydantic-модели для межсервисного взаимодействия.
"""

from src.shared.models.common import ErrorResponse, HealthStatus
from src.shared.models.location import GeoPoint

__all__ = [
    "ErrorResponse",
    "HealthStatus",
    "GeoPoint",
]
