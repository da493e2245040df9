# src/core/couriers/geo.py
import math

EARTH_RADIUS_M = 6371000.0

# Метров в одном градусе широты
METERS_PER_DEGREE = 111320.0


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Вычисляет расстояние между двумя точками (в метрах) по формуле Haversine.
    """
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def bounding_box(lat: float, lon: float, radius_m: float) -> tuple[float, float, float, float]:
    """Прямоугольник (min_lat, max_lat, min_lon, max_lon), содержащий круг радиуса radius_m."""
    dlat = radius_m / METERS_PER_DEGREE
    cos_lat = max(math.cos(math.radians(lat)), 1e-6)
    dlon = min(radius_m / (METERS_PER_DEGREE * cos_lat), 180.0)
    return lat - dlat, lat + dlat, lon - dlon, lon + dlon
