# src/core/availability/service.py
"""
Реестр доступности исполнителей.

Исполнитель доступен для новых предложений тогда и только тогда, когда
он на линии и не зарезервирован активным бронированием. reserve() —
единственный механизм, не дающий назначить одного исполнителя дважды.
"""

from __future__ import annotations

from src.common.constants import TypeMsg
from src.common.locks import KeyedLock
from src.common.logger import log_info
from src.infra.redis_client import RedisClient


class AvailabilityRegistry:
    """
    Реестр в памяти процесса.
    Все операции над одним исполнителем сериализованы его блокировкой.
    """

    def __init__(self) -> None:
        self._online: set[str] = set()
        self._reserved: set[str] = set()
        self._locks = KeyedLock()

    async def set_available(self, worker_id: str, online: bool) -> None:
        """
        Выход на линию / уход с линии.
        Зарезервированный исполнитель остаётся зарезервированным,
        пока бронирование его не освободит.
        """
        async with self._locks.hold(worker_id):
            if online:
                self._online.add(worker_id)
            else:
                self._online.discard(worker_id)

    async def reserve(self, worker_id: str) -> bool:
        """
        Атомарно убирает исполнителя из доступных.

        Returns:
            False, если исполнитель уже недоступен (не на линии или занят)
        """
        async with self._locks.hold(worker_id):
            if worker_id not in self._online or worker_id in self._reserved:
                return False
            self._reserved.add(worker_id)
            return True

    async def release(self, worker_id: str) -> None:
        """
        Снимает резерв. Идемпотентна: повторный вызов ничего не меняет.
        Исполнитель снова доступен, только если он на линии.
        """
        async with self._locks.hold(worker_id):
            self._reserved.discard(worker_id)

    async def is_available(self, worker_id: str) -> bool:
        return worker_id in self._online and worker_id not in self._reserved

    async def is_online(self, worker_id: str) -> bool:
        return worker_id in self._online

    async def is_reserved(self, worker_id: str) -> bool:
        return worker_id in self._reserved

    async def available_workers(self) -> set[str]:
        return self._online - self._reserved


class RedisAvailabilityRegistry:
    """
    Реестр в Redis. Множества online, available и reserved.

    Между процессами атомарность reserve обеспечивает SREM: из двух
    одновременных удалений одного элемента успешным будет только одно.
    Внутри процесса операции над исполнителем дополнительно
    сериализованы блокировкой.
    """

    ONLINE_KEY = "workers:online"
    AVAILABLE_KEY = "workers:available"
    RESERVED_KEY = "workers:reserved"

    def __init__(self, redis: RedisClient) -> None:
        self._redis = redis
        self._locks = KeyedLock()

    async def set_available(self, worker_id: str, online: bool) -> None:
        async with self._locks.hold(worker_id):
            if online:
                await self._redis.sadd(self.ONLINE_KEY, worker_id)
                if not await self._redis.sismember(self.RESERVED_KEY, worker_id):
                    await self._redis.sadd(self.AVAILABLE_KEY, worker_id)
            else:
                await self._redis.srem(self.ONLINE_KEY, worker_id)
                await self._redis.srem(self.AVAILABLE_KEY, worker_id)

    async def reserve(self, worker_id: str) -> bool:
        async with self._locks.hold(worker_id):
            removed = await self._redis.srem(self.AVAILABLE_KEY, worker_id)
            if not removed:
                return False
            await self._redis.sadd(self.RESERVED_KEY, worker_id)
            await log_info(f"Исполнитель {worker_id} зарезервирован", type_msg=TypeMsg.DEBUG)
            return True

    async def release(self, worker_id: str) -> None:
        async with self._locks.hold(worker_id):
            await self._redis.srem(self.RESERVED_KEY, worker_id)
            if await self._redis.sismember(self.ONLINE_KEY, worker_id):
                await self._redis.sadd(self.AVAILABLE_KEY, worker_id)

    async def is_available(self, worker_id: str) -> bool:
        return await self._redis.sismember(self.AVAILABLE_KEY, worker_id)

    async def is_online(self, worker_id: str) -> bool:
        return await self._redis.sismember(self.ONLINE_KEY, worker_id)

    async def is_reserved(self, worker_id: str) -> bool:
        return await self._redis.sismember(self.RESERVED_KEY, worker_id)

    async def available_workers(self) -> set[str]:
        return await self._redis.smembers(self.AVAILABLE_KEY)
