# tests/core/test_directory.py
"""
Тесты справочника исполнителей.
"""

from __future__ import annotations

import pytest

from src.common.constants import VehicleClass
from src.common.exceptions import WorkerNotFound
from src.core.availability.directory import WorkerDirectory, WorkerProfile


class TestWorkerDirectory:
    """Тесты WorkerDirectory."""

    @pytest.fixture
    def directory(self) -> WorkerDirectory:
        return WorkerDirectory()

    @pytest.mark.asyncio
    async def test_eligible_requires_kyc_and_class(self, directory: WorkerDirectory) -> None:
        await directory.register(WorkerProfile(worker_id="w-1", vehicle_class=VehicleClass.MINI_TRUCK, kyc_verified=True))
        await directory.register(WorkerProfile(worker_id="w-2", vehicle_class=VehicleClass.MINI_TRUCK))
        await directory.register(WorkerProfile(worker_id="w-3", vehicle_class=VehicleClass.TEMPO, kyc_verified=True))

        assert await directory.is_eligible("w-1", VehicleClass.MINI_TRUCK) is True
        assert await directory.is_eligible("w-2", VehicleClass.MINI_TRUCK) is False
        assert await directory.is_eligible("w-3", VehicleClass.MINI_TRUCK) is False
        assert await directory.is_eligible("w-unknown", VehicleClass.MINI_TRUCK) is False

    @pytest.mark.asyncio
    async def test_set_kyc(self, directory: WorkerDirectory) -> None:
        await directory.register(WorkerProfile(worker_id="w-1", vehicle_class="tempo"))

        profile = await directory.set_kyc("w-1", True)

        assert profile.kyc_verified is True
        assert (await directory.get("w-1")).kyc_verified is True

    @pytest.mark.asyncio
    async def test_set_kyc_unknown_worker(self, directory: WorkerDirectory) -> None:
        with pytest.raises(WorkerNotFound):
            await directory.set_kyc("w-404", True)
