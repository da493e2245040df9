"""
Геоточка в формате GeoJSON Point.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


class GeoPoint(BaseModel):
    """Точка GeoJSON: coordinates = [долгота, широта]."""

    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]

    @model_validator(mode="before")
    @classmethod
    def accept_lat_lon(cls, value: Any) -> Any:
        """Принимает также {"lat": .., "lon": ..} и {"latitude": .., "longitude": ..}."""
        if isinstance(value, dict) and "coordinates" not in value:
            lat = value.get("lat", value.get("latitude"))
            lon = value.get("lon", value.get("lng", value.get("longitude")))
            if lat is not None and lon is not None:
                return {"type": "Point", "coordinates": (lon, lat)}
        return value

    @model_validator(mode="after")
    def check_ranges(self) -> "GeoPoint":
        lon, lat = self.coordinates
        if not -180.0 <= lon <= 180.0 or not -90.0 <= lat <= 90.0:
            raise ValueError(f"Координаты вне диапазона: {self.coordinates}")
        return self

    @classmethod
    def from_lat_lon(cls, latitude: float, longitude: float) -> "GeoPoint":
        return cls(coordinates=(longitude, latitude))

    @property
    def latitude(self) -> float:
        return self.coordinates[1]

    @property
    def longitude(self) -> float:
        return self.coordinates[0]
