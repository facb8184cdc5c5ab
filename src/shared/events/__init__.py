# src/shared/events/__init__.py
"""
Доменные события ядра диспетчеризации.

События разделены по доменам:
- booking_events: бронирования, предложения, поездки
- worker_events: доступность, геопозиция, KYC исполнителей
- wallet_events: начисления, списания, вывод средств

Набор событий закрыт: EVENT_TYPES перечисляет все допустимые типы.
"""

from __future__ import annotations

import json

from src.shared.events.base import DomainEvent, EventMetadata, EventT
from src.shared.events.booking_events import (
    BookingRequested,
    OfferIssued,
    OfferCancelled,
    NoDriversAvailable,
    BookingAccepted,
    TripStarted,
    TripCompleted,
    BookingCancelled,
    BookingExpired,
)
from src.shared.events.worker_events import (
    WorkerAvailabilityChanged,
    WorkerLocationUpdated,
    KYCUpdated,
)
from src.shared.events.wallet_events import (
    WalletCredited,
    WalletDebited,
    WithdrawalRequested,
    WithdrawalSettled,
)

_EVENT_CLASSES: tuple[type[DomainEvent], ...] = (
    BookingRequested,
    OfferIssued,
    OfferCancelled,
    NoDriversAvailable,
    BookingAccepted,
    TripStarted,
    TripCompleted,
    BookingCancelled,
    BookingExpired,
    WorkerAvailabilityChanged,
    WorkerLocationUpdated,
    KYCUpdated,
    WalletCredited,
    WalletDebited,
    WithdrawalRequested,
    WithdrawalSettled,
)

# event_type -> класс события
EVENT_TYPES: dict[str, type[DomainEvent]] = {
    cls.model_fields["event_type"].default: cls for cls in _EVENT_CLASSES
}


def parse_event(data: str | bytes) -> DomainEvent:
    """
    Восстанавливает типизированное событие из JSON.

    Raises:
        ValueError: неизвестный event_type
    """
    event_type = json.loads(data).get("event_type")
    event_cls = EVENT_TYPES.get(event_type)
    if event_cls is None:
        raise ValueError(f"Неизвестный тип события: {event_type}")
    return event_cls.model_validate_json(data)


__all__ = [
    # Base
    "DomainEvent",
    "EventMetadata",
    "EventT",
    "EVENT_TYPES",
    "parse_event",
    # Booking events
    "BookingRequested",
    "OfferIssued",
    "OfferCancelled",
    "NoDriversAvailable",
    "BookingAccepted",
    "TripStarted",
    "TripCompleted",
    "BookingCancelled",
    "BookingExpired",
    # Worker events
    "WorkerAvailabilityChanged",
    "WorkerLocationUpdated",
    "KYCUpdated",
    # Wallet events
    "WalletCredited",
    "WalletDebited",
    "WithdrawalRequested",
    "WithdrawalSettled",
]
