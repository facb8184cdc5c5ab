# src/core/bookings/state_machine.py
"""
Конечный автомат статусов бронирования.
"""

from __future__ import annotations

from datetime import datetime

from src.common.constants import BookingStatus
from src.common.exceptions import IllegalTransition
from src.core.bookings.models import BookingRecord, TimelineEntry

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.SEARCHING, BookingStatus.CANCELLED}),
    BookingStatus.SEARCHING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.NO_DRIVERS_AVAILABLE,
        BookingStatus.EXPIRED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.EXPIRED: frozenset(),
    BookingStatus.NO_DRIVERS_AVAILABLE: frozenset(),
}

CANCELLABLE_STATUSES: frozenset[BookingStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items()
    if BookingStatus.CANCELLED in targets
)


def can_transition(current: BookingStatus, new: BookingStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition(
    booking: BookingRecord,
    new_status: BookingStatus,
    now: datetime,
    note: str | None = None,
    actor: str | None = None,
) -> BookingRecord:
    """
    Возвращает копию бронирования в новом статусе с одной новой записью timeline.
    Исходная запись не изменяется.

    Время записи не меньше времени предыдущей, даже если часы ушли назад.
    Список предложенных исполнителей очищается при выходе из searching.

    Raises:
        IllegalTransition: переход запрещён
    """
    if not can_transition(booking.status, new_status):
        raise IllegalTransition(
            f"Переход {booking.status.value} -> {new_status.value} запрещён",
            booking_id=booking.id,
            current=booking.status.value,
            requested=new_status.value,
        )

    timestamp = max(now, booking.last_transition_at)
    updated = booking.model_copy(deep=True)
    updated.status = new_status
    updated.timeline.append(TimelineEntry(status=new_status, timestamp=timestamp, note=note, actor=actor))
    updated.updated_at = timestamp
    if new_status != BookingStatus.SEARCHING:
        updated.notified_workers = []
    return updated
