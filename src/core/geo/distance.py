# src/core/geo/distance.py
"""
Оракул расстояния и времени в пути между двумя точками.
Вызывается до захвата любых блокировок бронирования.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.core.geo.utils import haversine_m


@dataclass(frozen=True)
class RouteEstimate:
    """Оценка маршрута."""
    distance_km: float
    duration_minutes: float
    source: str = "haversine"


class DistanceOracle(ABC):
    """Интерфейс оракула расстояний."""

    @abstractmethod
    async def estimate(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
    ) -> RouteEstimate:
        """Оценивает расстояние (км) и время (мин) между (lat, lng) точками."""

    async def close(self) -> None:
        return None


class HaversineDistanceOracle(DistanceOracle):
    """
    Оценка по прямой с поправкой на дорожную сеть.
    Используется без API ключа и как запасной вариант.
    """

    def __init__(self, road_factor: float = 1.3, average_speed_kmh: float = 25.0) -> None:
        self._road_factor = road_factor
        self._speed = average_speed_kmh

    async def estimate(self, origin, destination) -> RouteEstimate:
        straight_km = haversine_m(origin[0], origin[1], destination[0], destination[1]) / 1000.0
        distance_km = round(straight_km * self._road_factor, 2)
        duration = round(distance_km / self._speed * 60.0, 1)
        return RouteEstimate(distance_km=distance_km, duration_minutes=duration, source="haversine")


class GoogleDistanceOracle(DistanceOracle):
    """
    Google Distance Matrix API.
    При любой ошибке API возвращает оценку запасного оракула.
    """

    DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        fallback: DistanceOracle | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if api_key is None or timeout is None:
            from src.config import settings
            api_key = api_key if api_key is not None else settings.google_maps.GOOGLE_MAPS_API_KEY
            timeout = timeout if timeout is not None else settings.google_maps.DISTANCE_MATRIX_TIMEOUT

        self._api_key = api_key
        self._fallback = fallback or HaversineDistanceOracle()
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def estimate(self, origin, destination) -> RouteEstimate:
        if not self._api_key:
            return await self._fallback.estimate(origin, destination)

        try:
            response = await self._client.get(
                self.DISTANCE_MATRIX_URL,
                params={
                    "origins": f"{origin[0]},{origin[1]}",
                    "destinations": f"{destination[0]},{destination[1]}",
                    "units": "metric",
                    "key": self._api_key,
                },
            )
            data = response.json()

            element = data["rows"][0]["elements"][0]
            if data.get("status") != "OK" or element.get("status") != "OK":
                await log_info(
                    f"Distance Matrix не рассчитал маршрут: {element.get('status')}",
                    type_msg=TypeMsg.WARNING,
                )
                return await self._fallback.estimate(origin, destination)

            return RouteEstimate(
                distance_km=round(element["distance"]["value"] / 1000, 2),
                duration_minutes=round(element["duration"]["value"] / 60, 1),
                source="google",
            )
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            await log_error(f"Ошибка запроса Distance Matrix: {e}")
            return await self._fallback.estimate(origin, destination)


def build_distance_oracle() -> DistanceOracle:
    """Google при наличии ключа, иначе оценка по прямой."""
    from src.config import settings

    if settings.google_maps.GOOGLE_MAPS_API_KEY:
        return GoogleDistanceOracle()
    return HaversineDistanceOracle()
