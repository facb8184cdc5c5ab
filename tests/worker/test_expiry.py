# tests/worker/test_expiry.py
"""
Тесты таймера истечения предложений.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from conftest import DROP, PICKUP, FakeClock, add_worker
from src.common.constants import BookingStatus
from src.common.exceptions import IllegalTransition
from src.core.dispatch.service import DispatchCore
from src.worker.expiry import OfferExpiryScheduler


class TestOfferExpiryScheduler:
    """Тесты OfferExpiryScheduler."""

    @pytest.mark.asyncio
    async def test_expires_only_old_searching(self, core: DispatchCore, clock: FakeClock) -> None:
        await add_worker(core, "w-1", 1.0)
        await add_worker(core, "w-2", 2.0)
        old = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")
        clock.advance(50)
        fresh = await core.create_booking("cust-2", PICKUP, DROP, "mini-truck")
        clock.advance(20)
        scheduler = OfferExpiryScheduler(core.bookings, timeout_seconds=60, interval=1, clock=clock)

        await scheduler.run_once()

        assert (await core.get_booking(old.id)).status == BookingStatus.EXPIRED
        assert (await core.get_booking(fresh.id)).status == BookingStatus.SEARCHING
        assert scheduler.expired == 1

    @pytest.mark.asyncio
    async def test_accepted_meanwhile_is_skipped(self, clock: FakeClock) -> None:
        booking = AsyncMock()
        booking.id = "b-1"
        booking.booking_code = "BK1"
        booking.last_transition_at = clock.now
        bookings = AsyncMock()
        bookings.find_by_status.return_value = [booking]
        bookings.expire.side_effect = IllegalTransition("already confirmed")
        clock.advance(120)
        scheduler = OfferExpiryScheduler(bookings, timeout_seconds=60, interval=1, clock=clock)

        await scheduler.run_once()

        bookings.expire.assert_awaited_once_with("b-1")
        assert scheduler.expired == 0
