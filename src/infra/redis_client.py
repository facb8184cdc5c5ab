# src/infra/redis_client.py
"""
Клиент Redis для гео-индекса и реестра доступности исполнителей.
"""

from __future__ import annotations

import redis.asyncio as redis

from src.common.logger import log_error, log_info
from src.common.constants import TypeMsg


# Удаление позиции, если время обновления не изменилось с момента чтения
_GEOREM_IF_SEEN_SCRIPT = """
if redis.call('HGET', KEYS[2], ARGV[1]) == ARGV[2] then
    redis.call('ZREM', KEYS[1], ARGV[1])
    redis.call('HDEL', KEYS[2], ARGV[1])
    return 1
end
return 0
"""


class RedisClient:
    """
    Асинхронный клиент Redis с namespace для ключей.
    Поддерживает:
    - Geo-операции (GEOADD, GEOSEARCH, GEOPOS)
    - Множества (SREM используется как атомарный compare-and-swap)
    - Hash операции
    """

    _instance: RedisClient | None = None

    def __new__(cls) -> RedisClient:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._client: redis.Redis | None = None
        self._namespace = "dispatch"

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(
        self,
        url: str | None = None,
        max_connections: int = 50,
        namespace: str | None = None,
    ) -> None:
        """
        Подключается к Redis.

        Args:
            url: URL Redis (если None, берётся из конфига)
            max_connections: Максимальное количество соединений
            namespace: Префикс ключей
        """
        if self._client is not None:
            return

        if url is None:
            from src.config import settings
            url = settings.redis.url
            max_connections = settings.redis.REDIS_MAX_CONNECTIONS
            namespace = namespace or settings.redis.REDIS_NAMESPACE

        if namespace:
            self._namespace = namespace

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    async def delete(self, *keys: str) -> int:
        """Удаляет ключи."""
        return await self.client.delete(*(self._make_key(k) for k in keys))

    # =========================================================================
    # GEO ОПЕРАЦИИ
    # =========================================================================

    async def geoadd(self, key: str, longitude: float, latitude: float, member: str) -> int:
        """
        Добавляет или перезаписывает геопозицию участника.

        Returns:
            Количество добавленных элементов (0 при перезаписи)
        """
        return await self.client.geoadd(self._make_key(key), (longitude, latitude, member))

    async def geopos(self, key: str, member: str) -> tuple[float, float] | None:
        """
        Получает позицию участника.

        Returns:
            (longitude, latitude) или None
        """
        result = await self.client.geopos(self._make_key(key), member)
        if result and result[0]:
            return result[0]
        return None

    async def geosearch(
        self,
        key: str,
        longitude: float,
        latitude: float,
        radius_m: float,
        count: int | None = None,
    ) -> list[tuple[str, float]]:
        """
        Ищет участников в радиусе от точки, ближайшие первыми.

        Returns:
            Список кортежей (member, distance_m)
        """
        results = await self.client.geosearch(
            self._make_key(key),
            longitude=longitude,
            latitude=latitude,
            radius=radius_m,
            unit="m",
            sort="ASC",
            count=count,
            withdist=True,
        )
        return [(member, float(dist)) for member, dist in results]

    async def georem(self, key: str, member: str) -> int:
        """Удаляет участника из geo-индекса."""
        return await self.client.zrem(self._make_key(key), member)

    async def georem_if_seen(self, key: str, seen_key: str, member: str, seen: str) -> bool:
        """
        Удаляет участника из geo-индекса и hash времени обновления,
        только если в hash всё ещё лежит значение seen.
        Проверка и удаление выполняются одним Lua-скриптом.
        """
        removed = await self.client.eval(
            _GEOREM_IF_SEEN_SCRIPT,
            2,
            self._make_key(key),
            self._make_key(seen_key),
            member,
            seen,
        )
        return bool(removed)

    # =========================================================================
    # SET ОПЕРАЦИИ
    # =========================================================================

    async def sadd(self, key: str, *members: str) -> int:
        """Добавляет элементы в множество."""
        return await self.client.sadd(self._make_key(key), *members)

    async def srem(self, key: str, *members: str) -> int:
        """
        Удаляет элементы из множества.
        Возвращает число реально удалённых: из двух одновременных SREM
        одного элемента 1 получит только один.
        """
        return await self.client.srem(self._make_key(key), *members)

    async def sismember(self, key: str, member: str) -> bool:
        """Проверяет принадлежность к множеству."""
        return bool(await self.client.sismember(self._make_key(key), member))

    async def smembers(self, key: str) -> set[str]:
        """Возвращает все элементы множества."""
        return await self.client.smembers(self._make_key(key))

    # =========================================================================
    # HASH ОПЕРАЦИИ
    # =========================================================================

    async def hget(self, name: str, key: str) -> str | None:
        """Получает значение из хеша."""
        return await self.client.hget(self._make_key(name), key)

    async def hset(self, name: str, key: str, value: str) -> int:
        """Устанавливает значение в хеше."""
        return await self.client.hset(self._make_key(name), key, value)

    async def hgetall(self, name: str) -> dict[str, str]:
        """Получает все поля хеша."""
        return await self.client.hgetall(self._make_key(name))

    async def hdel(self, name: str, *keys: str) -> int:
        """Удаляет поля из хеша."""
        return await self.client.hdel(self._make_key(name), *keys)

    # =========================================================================
    # HEALTH CHECK
    # =========================================================================

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False


def get_redis() -> RedisClient:
    """Возвращает глобальный экземпляр RedisClient."""
    return RedisClient()


async def init_redis() -> RedisClient:
    """
    Инициализирует подключение к Redis по настройкам из конфигурации.
    """
    from src.config import settings

    redis_client = get_redis()
    await redis_client.connect(
        url=settings.redis.url,
        max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        namespace=settings.redis.REDIS_NAMESPACE,
    )
    return redis_client


async def close_redis() -> None:
    """Закрывает подключение к Redis."""
    await get_redis().disconnect()
