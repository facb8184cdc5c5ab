# tests/common/test_locks.py
"""
Тесты блокировок по ключу.
"""

import asyncio

import pytest

from src.common.locks import KeyedLock


class TestKeyedLock:
    """Тесты для KeyedLock."""

    @pytest.mark.asyncio
    async def test_same_key_serialized(self) -> None:
        """Операции над одним ключом не пересекаются."""
        locks = KeyedLock()
        active = 0
        max_active = 0

        async def critical() -> None:
            nonlocal active, max_active
            async with locks.hold("booking-1"):
                active += 1
                max_active = max(max_active, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*(critical() for _ in range(5)))

        assert max_active == 1

    @pytest.mark.asyncio
    async def test_different_keys_independent(self) -> None:
        locks = KeyedLock()
        async with locks.hold("a"):
            assert locks.is_locked("a")
            assert not locks.is_locked("b")
            async with locks.hold("b"):
                assert locks.is_locked("b")

    @pytest.mark.asyncio
    async def test_unused_locks_removed(self) -> None:
        locks = KeyedLock()
        async with locks.hold("a"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_exception(self) -> None:
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold("a"):
                raise RuntimeError("boom")
        assert not locks.is_locked("a")
        assert len(locks) == 0
