# src/shared/events/booking_events.py
"""
События жизненного цикла бронирования и предложений исполнителям.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from src.shared.events.base import DomainEvent


class BookingRequested(DomainEvent):
    """Событие: создано бронирование (статус pending)."""

    event_type: Literal["booking.requested"] = "booking.requested"

    booking_id: str
    booking_code: str
    requester_id: str
    vehicle_class: str
    pickup_lat: float
    pickup_lng: float
    drop_lat: float
    drop_lng: float
    fare_total: Decimal
    currency: str = "INR"
    payment_method: str


class OfferIssued(DomainEvent):
    """Событие: исполнителю отправлено предложение."""

    event_type: Literal["booking.offer_issued"] = "booking.offer_issued"

    booking_id: str
    booking_code: str
    worker_id: str
    rank: int
    distance_m: float
    incentive: Decimal
    fare_total: Decimal
    currency: str = "INR"
    vehicle_class: str
    pickup_lat: float
    pickup_lng: float
    pickup_address: str | None = None
    drop_address: str | None = None
    trip_distance_km: float


class OfferCancelled(DomainEvent):
    """Событие: предложение исполнителю больше не действительно."""

    event_type: Literal["booking.offer_cancelled"] = "booking.offer_cancelled"

    booking_id: str
    booking_code: str
    worker_id: str
    reason: Literal["taken", "cancelled", "expired"]


class NoDriversAvailable(DomainEvent):
    """Событие: подходящих исполнителей рядом нет."""

    event_type: Literal["booking.no_drivers_available"] = "booking.no_drivers_available"

    booking_id: str
    booking_code: str
    requester_id: str
    vehicle_class: str
    search_radius_km: float
    refund_amount: Decimal = Decimal("0")
    payment_method: str


class BookingAccepted(DomainEvent):
    """Событие: исполнитель выиграл гонку за бронирование."""

    event_type: Literal["booking.accepted"] = "booking.accepted"

    booking_id: str
    booking_code: str
    requester_id: str
    worker_id: str


class TripStarted(DomainEvent):
    """Событие: поездка началась."""

    event_type: Literal["booking.trip_started"] = "booking.trip_started"

    booking_id: str
    booking_code: str
    requester_id: str
    worker_id: str


class TripCompleted(DomainEvent):
    """Событие: поездка завершена, исполнитель освобождён."""

    event_type: Literal["booking.trip_completed"] = "booking.trip_completed"

    booking_id: str
    booking_code: str
    requester_id: str
    worker_id: str
    fare_total: Decimal
    currency: str = "INR"
    payment_method: str


class BookingCancelled(DomainEvent):
    """Событие: бронирование отменено. Возврат средств выполняет кошелёк."""

    event_type: Literal["booking.cancelled"] = "booking.cancelled"

    booking_id: str
    booking_code: str
    requester_id: str
    worker_id: str | None = None
    actor: str
    reason: str
    refund_amount: Decimal = Decimal("0")
    payment_method: str


class BookingExpired(DomainEvent):
    """Событие: никто не принял предложение вовремя."""

    event_type: Literal["booking.expired"] = "booking.expired"

    booking_id: str
    booking_code: str
    requester_id: str
    refund_amount: Decimal = Decimal("0")
    payment_method: str
