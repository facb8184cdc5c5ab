# src/core/availability/directory.py
"""
Справочник исполнителей: класс транспорта и статус KYC.
Подбор предлагает бронирование только проверенным исполнителям
точно совпадающего класса.
"""

from __future__ import annotations

from pydantic import BaseModel

from src.common.constants import VehicleClass
from src.common.exceptions import WorkerNotFound


class WorkerProfile(BaseModel):
    """Профиль исполнителя, нужный для подбора."""
    worker_id: str
    vehicle_class: VehicleClass
    kyc_verified: bool = False
    name: str | None = None
    language: str = "en"


class WorkerDirectory:
    """Справочник профилей в памяти процесса."""

    def __init__(self) -> None:
        self._profiles: dict[str, WorkerProfile] = {}

    async def register(self, profile: WorkerProfile) -> WorkerProfile:
        """Добавляет или заменяет профиль."""
        self._profiles[profile.worker_id] = profile
        return profile

    async def get(self, worker_id: str) -> WorkerProfile | None:
        return self._profiles.get(worker_id)

    async def set_kyc(self, worker_id: str, verified: bool) -> WorkerProfile:
        """
        Raises:
            WorkerNotFound: исполнитель не зарегистрирован
        """
        profile = self._profiles.get(worker_id)
        if profile is None:
            raise WorkerNotFound(f"Исполнитель {worker_id} не найден", worker_id=worker_id)
        updated = profile.model_copy(update={"kyc_verified": verified})
        self._profiles[worker_id] = updated
        return updated

    async def is_eligible(self, worker_id: str, vehicle_class: VehicleClass) -> bool:
        """Проверенный исполнитель нужного класса транспорта."""
        profile = self._profiles.get(worker_id)
        return (
            profile is not None
            and profile.kyc_verified
            and profile.vehicle_class == vehicle_class
        )
