"""Бронирования: модели, автомат статусов, тарифы, хранилища."""

from src.core.bookings.fares import FareCalculator
from src.core.bookings.models import (
    BookingRecord,
    CancellationRecord,
    FareBreakdown,
    GeoPoint,
    Requirements,
    TimelineEntry,
)
from src.core.bookings.repository import (
    BookingRepository,
    InMemoryBookingRepository,
    PostgresBookingRepository,
)
from src.core.bookings.service import BookingService

__all__ = [
    "BookingRecord",
    "BookingRepository",
    "BookingService",
    "CancellationRecord",
    "FareBreakdown",
    "FareCalculator",
    "GeoPoint",
    "InMemoryBookingRepository",
    "PostgresBookingRepository",
    "Requirements",
    "TimelineEntry",
]
