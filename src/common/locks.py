# src/common/locks.py
"""
Блокировки по ключу для сериализации операций над одной сущностью.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Hashable


class KeyedLock:
    """
    Набор asyncio.Lock, по одному на ключ.

    Операции над разными ключами не блокируют друг друга.
    Неиспользуемые блокировки удаляются, поэтому словарь не растёт
    бесконечно.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._waiters: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncGenerator[None, None]:
        """
        Захватывает блокировку ключа на время контекста.

        Example:
            async with locks.hold(booking_id):
                ...
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def is_locked(self, key: Hashable) -> bool:
        """Занят ли ключ в данный момент."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
