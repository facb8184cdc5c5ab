# tests/infra/test_event_bus.py
"""
Тесты внутрипроцессной шины событий.
"""

from __future__ import annotations

import asyncio

import pytest

from src.infra.event_bus import ALL_EVENTS, EventBus
from src.shared.events import BookingAccepted, KYCUpdated, TripStarted


def _accepted(n: int = 1) -> BookingAccepted:
    return BookingAccepted(
        booking_id=f"b-{n}",
        booking_code=f"BK{n}",
        requester_id="cust-1",
        worker_id="w-1",
    )


class TestSubscribe:
    """Тесты подписки и доставки."""

    @pytest.mark.asyncio
    async def test_delivers_by_type(self, event_bus: EventBus) -> None:
        received = []
        await event_bus.subscribe(BookingAccepted, received.append)

        await event_bus.publish(_accepted())
        await event_bus.publish(KYCUpdated(worker_id="w-1", kyc_verified=True))
        assert await event_bus.drain(timeout=1.0)

        assert [e.event_type for e in received] == ["booking.accepted"]

    @pytest.mark.asyncio
    async def test_string_type_and_wildcard(self, event_bus: EventBus) -> None:
        by_name, everything = [], []
        await event_bus.subscribe("worker.kyc_updated", by_name.append)
        await event_bus.subscribe(ALL_EVENTS, everything.append)

        await event_bus.publish(_accepted())
        await event_bus.publish(KYCUpdated(worker_id="w-1", kyc_verified=False))
        await event_bus.drain(timeout=1.0)

        assert len(by_name) == 1
        assert len(everything) == 2

    @pytest.mark.asyncio
    async def test_fifo_per_subscriber(self, event_bus: EventBus) -> None:
        received = []

        async def slow(event):
            await asyncio.sleep(0)
            received.append(event.booking_id)

        await event_bus.subscribe(BookingAccepted, slow)
        await event_bus.publish_many([_accepted(i) for i in range(10)])
        await event_bus.drain(timeout=1.0)

        assert received == [f"b-{i}" for i in range(10)]


class TestIsolation:
    """Ошибка одного подписчика не влияет на других."""

    @pytest.mark.asyncio
    async def test_failing_subscriber_isolated(self, event_bus: EventBus) -> None:
        received = []

        async def broken(event):
            raise RuntimeError("boom")

        failing = await event_bus.subscribe(BookingAccepted, broken, name="broken")
        await event_bus.subscribe(BookingAccepted, received.append, name="ok")

        await event_bus.publish(_accepted(1))
        await event_bus.publish(_accepted(2))
        await event_bus.drain(timeout=1.0)

        assert len(received) == 2
        assert failing.failed == 2
        assert failing.active
        assert event_bus.stats()["failed"] == 2

    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_handlers(self, event_bus: EventBus) -> None:
        gate = asyncio.Event()

        async def blocked(event):
            await gate.wait()

        await event_bus.subscribe(BookingAccepted, blocked)
        await asyncio.wait_for(event_bus.publish(_accepted()), timeout=0.5)

        assert event_bus.pending == 1
        assert await event_bus.drain(timeout=0.05) is False

        gate.set()
        assert await event_bus.drain(timeout=1.0) is True
        assert event_bus.pending == 0


class TestLifecycle:
    """Тесты отписки и закрытия."""

    @pytest.mark.asyncio
    async def test_unsubscribe_only_that_subscriber(self, event_bus: EventBus) -> None:
        first, second = [], []
        sub = await event_bus.subscribe(BookingAccepted, first.append)
        await event_bus.subscribe(BookingAccepted, second.append)

        await event_bus.unsubscribe(sub)
        await event_bus.publish(_accepted())
        await event_bus.drain(timeout=1.0)

        assert first == []
        assert len(second) == 1
        assert not sub.active
        assert len(event_bus.subscriptions) == 1

    @pytest.mark.asyncio
    async def test_drain_includes_chained_events(self, event_bus: EventBus) -> None:
        """События, опубликованные обработчиком, тоже дожидаются."""
        started = []

        async def chain(event):
            await event_bus.publish(TripStarted(
                booking_id=event.booking_id,
                booking_code=event.booking_code,
                requester_id=event.requester_id,
                worker_id=event.worker_id,
            ))

        await event_bus.subscribe(BookingAccepted, chain)
        await event_bus.subscribe(TripStarted, started.append)

        await event_bus.publish(_accepted())
        await event_bus.drain(timeout=1.0)

        assert len(started) == 1

    @pytest.mark.asyncio
    async def test_closed_bus_drops_events(self) -> None:
        bus = EventBus()
        received = []
        await bus.subscribe(BookingAccepted, received.append)
        await bus.close(timeout=1.0)

        await bus.publish(_accepted())

        assert received == []
        assert bus.subscriptions == []
