# src/core/geo/utils.py
"""
Геометрия на сфере и проверка координат.
"""

import math

from src.common.exceptions import InvalidCoordinate

EARTH_RADIUS_M = 6_371_000.0


def validate_coordinates(lat: float, lng: float) -> None:
    """
    Проверяет, что широта в [-90, 90], а долгота в [-180, 180].

    Raises:
        InvalidCoordinate: координата вне диапазона или не число
    """
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        raise InvalidCoordinate(f"Координаты должны быть числами: ({lat!r}, {lng!r})", lat=lat, lng=lng)
    if math.isnan(lat) or math.isnan(lng):
        raise InvalidCoordinate("Координата NaN", lat=lat, lng=lng)
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"Широта вне диапазона [-90, 90]: {lat}", lat=lat, lng=lng)
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(f"Долгота вне диапазона [-180, 180]: {lng}", lat=lat, lng=lng)


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Расстояние между двумя точками (в метрах) по формуле Haversine."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) *
         math.sin(dlng / 2) ** 2)

    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


# Redis GEO хранит точки в проекции Web Mercator
REDIS_GEO_MAX_LATITUDE = 85.05112878


def validate_redis_coordinates(lat: float, lng: float) -> None:
    """
    Проверка координат для Redis GEO: общий диапазон
    и ограничение широты |lat| <= 85.05112878.

    Raises:
        InvalidCoordinate: координата вне диапазона или не поддерживается Redis
    """
    validate_coordinates(lat, lng)
    if abs(lat) > REDIS_GEO_MAX_LATITUDE:
        raise InvalidCoordinate(
            f"Широта {lat} вне диапазона Redis GEO [-{REDIS_GEO_MAX_LATITUDE}, {REDIS_GEO_MAX_LATITUDE}]",
            lat=lat,
            lng=lng,
        )
