"""Гео-индекс исполнителей и оракул расстояний."""

from src.core.geo.distance import (
    DistanceOracle,
    GoogleDistanceOracle,
    HaversineDistanceOracle,
    RouteEstimate,
)
from src.core.geo.service import GeoIndex, RedisGeoIndex, WorkerLocation

__all__ = [
    "DistanceOracle",
    "GoogleDistanceOracle",
    "HaversineDistanceOracle",
    "RouteEstimate",
    "GeoIndex",
    "RedisGeoIndex",
    "WorkerLocation",
]
