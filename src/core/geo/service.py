# src/core/geo/service.py
"""
Гео-индекс исполнителей: последняя известная позиция каждого исполнителя
и поиск "кто в радиусе R от точки P".

Позиции эфемерны: исполнитель, переставший присылать координаты дольше TTL,
удаляется периодической очисткой и перестаёт попадать в подбор.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.core.geo.utils import haversine_m, validate_coordinates, validate_redis_coordinates
from src.infra.redis_client import RedisClient

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WorkerLocation:
    """Последняя известная позиция исполнителя."""
    worker_id: str
    lat: float
    lng: float
    updated_at: datetime


def _rank(hits: list[tuple[str, float]], limit: int | None) -> list[tuple[str, float]]:
    # Ближайшие первыми, при равенстве — по идентификатору
    hits.sort(key=lambda hit: (hit[1], hit[0]))
    return hits if limit is None else hits[:limit]


class GeoIndex:
    """
    Гео-индекс в памяти процесса.

    Обновления разных исполнителей независимы; запрос читает снимок
    и может конкурировать с одновременными upsert без блокировок.
    """

    def __init__(self, ttl_seconds: int | None = None, clock: Clock = utc_now) -> None:
        if ttl_seconds is None:
            from src.config import settings
            ttl_seconds = settings.geo.LOCATION_TTL_SECONDS
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._locations: dict[str, WorkerLocation] = {}

    async def upsert(self, worker_id: str, lat: float, lng: float) -> WorkerLocation:
        """
        Записывает (перезаписывает) позицию исполнителя и обновляет updated_at.

        Raises:
            InvalidCoordinate: координаты вне диапазона
        """
        validate_coordinates(lat, lng)
        location = WorkerLocation(worker_id, float(lat), float(lng), self._clock())
        self._locations[worker_id] = location
        return location

    async def remove(self, worker_id: str) -> bool:
        """Удаляет позицию исполнителя. Возвращает False, если её не было."""
        return self._locations.pop(worker_id, None) is not None

    async def get(self, worker_id: str) -> WorkerLocation | None:
        return self._locations.get(worker_id)

    async def query(
        self,
        lat: float,
        lng: float,
        radius_km: float,
        limit: int | None = None,
    ) -> list[tuple[str, float]]:
        """
        Исполнители в радиусе radius_km от точки.

        Returns:
            Список (worker_id, distance_m), ближайшие первыми,
            не длиннее limit

        Raises:
            InvalidCoordinate: центр поиска вне диапазона
        """
        validate_coordinates(lat, lng)
        radius_m = radius_km * 1000.0

        hits = []
        for location in list(self._locations.values()):
            distance = haversine_m(lat, lng, location.lat, location.lng)
            if distance <= radius_m:
                hits.append((location.worker_id, distance))

        return _rank(hits, limit)

    async def sweep(self) -> list[str]:
        """
        Удаляет позиции, не обновлявшиеся дольше TTL.

        Returns:
            Идентификаторы удалённых исполнителей
        """
        threshold = self._clock() - self._ttl
        stale = [
            location.worker_id
            for location in list(self._locations.values())
            if location.updated_at < threshold
        ]
        for worker_id in stale:
            current = self._locations.get(worker_id)
            # Позиция могла обновиться, пока собирали список
            if current is not None and current.updated_at < threshold:
                del self._locations[worker_id]

        if stale:
            await log_info(f"Удалены устаревшие позиции: {len(stale)}", type_msg=TypeMsg.DEBUG)
        return stale

    def __len__(self) -> int:
        return len(self._locations)


class RedisGeoIndex:
    """
    Гео-индекс в Redis: GEO-множество позиций и hash с временем
    последнего обновления. Контракт совпадает с GeoIndex.
    """

    LOCATIONS_KEY = "workers:locations"
    LAST_SEEN_KEY = "workers:last_seen"

    def __init__(
        self,
        redis: RedisClient,
        ttl_seconds: int | None = None,
        clock: Clock = utc_now,
    ) -> None:
        if ttl_seconds is None:
            from src.config import settings
            ttl_seconds = settings.geo.LOCATION_TTL_SECONDS
        self._redis = redis
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    async def upsert(self, worker_id: str, lat: float, lng: float) -> WorkerLocation:
        validate_redis_coordinates(lat, lng)
        now = self._clock()
        await self._redis.geoadd(self.LOCATIONS_KEY, lng, lat, worker_id)
        await self._redis.hset(self.LAST_SEEN_KEY, worker_id, now.isoformat())
        return WorkerLocation(worker_id, float(lat), float(lng), now)

    async def remove(self, worker_id: str) -> bool:
        removed = await self._redis.georem(self.LOCATIONS_KEY, worker_id)
        await self._redis.hdel(self.LAST_SEEN_KEY, worker_id)
        return removed > 0

    async def get(self, worker_id: str) -> WorkerLocation | None:
        position = await self._redis.geopos(self.LOCATIONS_KEY, worker_id)
        if position is None:
            return None
        seen = await self._redis.hget(self.LAST_SEEN_KEY, worker_id)
        updated_at = datetime.fromisoformat(seen) if seen else self._clock()
        lng, lat = position
        return WorkerLocation(worker_id, float(lat), float(lng), updated_at)

    async def query(
        self,
        lat: float,
        lng: float,
        radius_km: float,
        limit: int | None = None,
    ) -> list[tuple[str, float]]:
        validate_redis_coordinates(lat, lng)
        # Забираем весь радиус: сортировка с разбором равных делается здесь
        hits = await self._redis.geosearch(self.LOCATIONS_KEY, lng, lat, radius_km * 1000.0)
        return _rank(list(hits), limit)

    async def sweep(self) -> list[str]:
        threshold = self._clock() - self._ttl
        last_seen = await self._redis.hgetall(self.LAST_SEEN_KEY)

        stale = []
        for worker_id, seen in last_seen.items():
            if datetime.fromisoformat(seen) >= threshold:
                continue
            # Не удаляем, если исполнитель обновил позицию после чтения hash
            if await self._redis.georem_if_seen(self.LOCATIONS_KEY, self.LAST_SEEN_KEY, worker_id, seen):
                stale.append(worker_id)

        if stale:
            await log_info(f"Удалены устаревшие позиции из Redis: {len(stale)}", type_msg=TypeMsg.DEBUG)
        return stale
