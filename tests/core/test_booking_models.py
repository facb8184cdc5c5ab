# tests/core/test_booking_models.py
"""
Тесты моделей бронирования.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from src.common.constants import BookingStatus, PaymentMethod
from src.core.bookings.models import (
    BookingRecord,
    FareBreakdown,
    GeoPoint,
    TimelineEntry,
    generate_booking_code,
)

T0 = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_booking(**overrides) -> BookingRecord:
    data = dict(
        requester_id="cust-1",
        vehicle_class="mini-truck",
        pickup=GeoPoint(lat=19.07, lng=72.87),
        drop=GeoPoint(lat=19.10, lng=72.90),
        fare=FareBreakdown(base=Decimal("50"), distance=Decimal("120"), time=Decimal("60"), total=Decimal("230")),
        timeline=[TimelineEntry(status=BookingStatus.PENDING, timestamp=T0)],
        created_at=T0,
        updated_at=T0,
    )
    data.update(overrides)
    return BookingRecord(**data)


class TestBookingCode:
    """Тесты генерации кода бронирования."""

    def test_format(self) -> None:
        code = generate_booking_code(T0)
        assert re.fullmatch(r"BK240115120000\d{4}", code)

    def test_default_code_assigned(self) -> None:
        assert make_booking().booking_code.startswith("BK")


class TestBookingRecord:
    """Тесты BookingRecord."""

    def test_defaults(self) -> None:
        booking = make_booking()

        assert booking.status == BookingStatus.PENDING
        assert booking.payment_method == PaymentMethod.COD
        assert booking.is_wallet_paid is False
        assert booking.is_terminal is False
        assert booking.version == 0

    def test_last_transition_at(self) -> None:
        later = T0 + timedelta(minutes=5)
        booking = make_booking(
            status=BookingStatus.SEARCHING,
            timeline=[
                TimelineEntry(status=BookingStatus.PENDING, timestamp=T0),
                TimelineEntry(status=BookingStatus.SEARCHING, timestamp=later),
            ],
        )
        assert booking.last_transition_at == later
        assert make_booking(timeline=[]).last_transition_at == T0

    def test_consistent_record_has_no_violations(self) -> None:
        assert make_booking().invariant_violations() == []

    def test_violations_detected(self) -> None:
        booking = make_booking(
            assigned_worker="w-1",
            notified_workers=["w-1"],
            timeline=[
                TimelineEntry(status=BookingStatus.PENDING, timestamp=T0),
                TimelineEntry(status=BookingStatus.SEARCHING, timestamp=T0 - timedelta(seconds=1)),
            ],
        )

        problems = booking.invariant_violations()

        assert len(problems) == 4

    def test_json_roundtrip_keeps_decimal(self) -> None:
        booking = make_booking(payment_method="wallet")
        restored = BookingRecord.model_validate_json(booking.model_dump_json())

        assert restored.fare.total == Decimal("230")
        assert restored.is_wallet_paid
