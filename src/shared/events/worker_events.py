# src/shared/events/worker_events.py
"""
События исполнителей: доступность, геопозиция, KYC.
"""

from __future__ import annotations

from typing import Literal

from src.shared.events.base import DomainEvent


class WorkerAvailabilityChanged(DomainEvent):
    """Событие: исполнитель вышел на линию или ушёл с неё."""

    event_type: Literal["worker.availability_changed"] = "worker.availability_changed"

    worker_id: str
    online: bool


class WorkerLocationUpdated(DomainEvent):
    """Событие: обновлена геопозиция исполнителя."""

    event_type: Literal["worker.location_updated"] = "worker.location_updated"

    worker_id: str
    lat: float
    lng: float


class KYCUpdated(DomainEvent):
    """Событие: изменился статус проверки документов."""

    event_type: Literal["worker.kyc_updated"] = "worker.kyc_updated"

    worker_id: str
    kyc_verified: bool
    reason: str | None = None
