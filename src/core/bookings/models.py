# src/core/bookings/models.py
"""
Модели данных бронирований.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field

from src.common.constants import (
    ASSIGNED_STATUSES,
    TERMINAL_STATUSES,
    BookingStatus,
    CancelActor,
    PaymentMethod,
    VehicleClass,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_booking_code(now: datetime | None = None) -> str:
    """Человекочитаемый код бронирования: BK + время + случайный суффикс."""
    now = now or utc_now()
    return f"BK{now:%y%m%d%H%M%S}{secrets.randbelow(10_000):04d}"


class GeoPoint(BaseModel):
    """Точка подачи или назначения."""
    lat: float
    lng: float
    address: str | None = None
    landmark: str | None = None

    @property
    def coordinates(self) -> tuple[float, float]:
        return self.lat, self.lng


class Requirements(BaseModel):
    """Дополнительные требования к перевозке."""
    helper: bool = False
    fragile: bool = False
    heavy: bool = False
    notes: str | None = None


class FareBreakdown(BaseModel):
    """Разбивка стоимости."""
    base: Decimal
    distance: Decimal
    time: Decimal
    surge: Decimal = Decimal("0")
    additional: Decimal = Decimal("0")
    total: Decimal
    currency: str = "INR"


class TimelineEntry(BaseModel):
    """Запись истории статусов. Не изменяется после добавления."""
    status: BookingStatus
    timestamp: datetime
    note: str | None = None
    actor: str | None = None


class CancellationRecord(BaseModel):
    """Сведения об отмене."""
    actor: CancelActor
    reason: str
    cancelled_at: datetime
    refund_amount: Decimal = Decimal("0")


class BookingRecord(BaseModel):
    """Бронирование перевозки."""

    id: str = Field(default_factory=lambda: str(uuid4()), description="UUID бронирования")
    booking_code: str = Field(default_factory=generate_booking_code, description="Код для клиента")
    requester_id: str = Field(..., description="ID заказчика")
    assigned_worker: str | None = Field(None, description="ID назначенного исполнителя")
    status: BookingStatus = Field(BookingStatus.PENDING, description="Статус")
    vehicle_class: VehicleClass

    pickup: GeoPoint
    drop: GeoPoint
    requirements: Requirements = Field(default_factory=Requirements)

    distance_km: float = Field(0.0, ge=0.0, description="Длина маршрута")
    duration_minutes: float = Field(0.0, ge=0.0, description="Время в пути")
    fare: FareBreakdown
    payment_method: PaymentMethod = PaymentMethod.COD

    timeline: list[TimelineEntry] = Field(default_factory=list)
    notified_workers: list[str] = Field(default_factory=list)
    cancellation: CancellationRecord | None = None

    archived: bool = False
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_wallet_paid(self) -> bool:
        return self.payment_method == PaymentMethod.WALLET

    @property
    def last_transition_at(self) -> datetime:
        return self.timeline[-1].timestamp if self.timeline else self.created_at

    def invariant_violations(self) -> list[str]:
        """
        Проверка инвариантов записи.

        Returns:
            Список нарушений (пустой, если всё в порядке)
        """
        problems = []
        if self.notified_workers and self.status != BookingStatus.SEARCHING:
            problems.append(f"notified_workers не пуст в статусе {self.status.value}")
        if (self.assigned_worker is not None) != (self.status in ASSIGNED_STATUSES):
            problems.append(f"assigned_worker={self.assigned_worker} в статусе {self.status.value}")
        for earlier, later in zip(self.timeline, self.timeline[1:]):
            if later.timestamp < earlier.timestamp:
                problems.append("timeline не упорядочен по времени")
                break
        if self.timeline and self.timeline[-1].status != self.status:
            problems.append("последняя запись timeline не совпадает со статусом")
        return problems
