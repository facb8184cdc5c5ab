# tests/core/test_dispatch_flow.py
"""
Сквозные сценарии ядра диспетчеризации: от создания бронирования
до начисления заработка и вывода средств.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from conftest import DROP, PICKUP, FixedDistanceOracle, RecordingTransport, add_worker, collect
from src.common.constants import BookingStatus, TransactionCategory
from src.common.exceptions import (
    AlreadyAssigned,
    IllegalTransition,
    InsufficientBalance,
    InvalidCoordinate,
    InvalidVehicleClass,
    WorkerNotFound,
)
from src.core.dispatch.service import DispatchCore

UPI = {"upi_id": "worker@upi"}


async def record_events(core: DispatchCore) -> list:
    received: list = []
    await core.subscribe("*", received.append, name="test_collector")
    return received


async def confirmed_trip(core: DispatchCore, worker_id: str = "w-1", **booking_kwargs):
    await add_worker(core, worker_id, 1.0)
    booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck", **booking_kwargs)
    return await core.accept_booking(booking.id, worker_id)


class TestDispatchFlow:
    """Бронирование от создания до оплаты через фасад ядра."""

    @pytest.mark.asyncio
    async def test_nearest_worker_wins(self, core: DispatchCore, transport: RecordingTransport) -> None:
        """Два исполнителя в 1 и 3 км; ближний принимает, дальний получает отмену предложения."""
        await add_worker(core, "w-near", 1.0)
        await add_worker(core, "w-far", 3.0)
        events = await record_events(core)

        booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")
        await core.event_bus.drain(timeout=1.0)

        offers = collect(events, "booking.offer_issued")
        assert booking.status == BookingStatus.SEARCHING
        assert [o.worker_id for o in offers] == ["w-near", "w-far"]

        accepted = await core.accept_booking(booking.id, "w-near")
        await core.event_bus.drain(timeout=1.0)

        assert accepted.status == BookingStatus.CONFIRMED
        assert accepted.assigned_worker == "w-near"
        cancelled = collect(events, "booking.offer_cancelled")
        assert [(e.worker_id, e.reason) for e in cancelled] == [("w-far", "taken")]
        assert transport.for_recipient("w-far")[-1].title == "Booking no longer available"
        assert transport.for_recipient("cust-1")[-1].data["worker_id"] == "w-near"

    @pytest.mark.asyncio
    async def test_no_matching_workers(self, core: DispatchCore, transport: RecordingTransport) -> None:
        await add_worker(core, "w-tempo", 1.0, vehicle_class="tempo")

        booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")
        await core.event_bus.drain(timeout=1.0)

        assert booking.status == BookingStatus.NO_DRIVERS_AVAILABLE
        assert booking.notified_workers == []
        assert transport.for_recipient("w-tempo") == []
        assert len(transport.for_recipient("cust-1")) == 1

    @pytest.mark.asyncio
    async def test_trip_earning_split(self, core: DispatchCore, distance_oracle: FixedDistanceOracle) -> None:
        """Стоимость 1000 при комиссии 20%: исполнителю 800."""
        distance_oracle.distance_km = 65.0
        distance_oracle.duration_minutes = 85.0
        await core.ledger.credit("w-1", "50", TransactionCategory.BONUS)

        booking = await confirmed_trip(core)
        assert booking.fare.total == Decimal("1000.00")
        await core.start_trip(booking.id, "w-1")
        await core.complete_trip(booking.id, "w-1")
        await core.event_bus.drain(timeout=1.0)

        account = await core.ledger.get_account("w-1")
        earning = account.transactions[-1]
        assert account.balance == Decimal("850.00")
        assert earning.category == TransactionCategory.TRIP_EARNING
        assert earning.amount == Decimal("800.00")
        assert earning.balance_after == Decimal("850.00")
        assert sum(1 for tx in account.transactions if tx.category == TransactionCategory.TRIP_EARNING) == 1

    @pytest.mark.asyncio
    async def test_withdrawal_above_balance(self, core: DispatchCore) -> None:
        await core.ledger.credit("w-1", "30", TransactionCategory.BONUS)

        with pytest.raises(InsufficientBalance):
            await core.request_withdrawal("w-1", "40", UPI)

        balance = await core.get_wallet_balance("w-1")
        assert balance.balance == Decimal("30.00")
        assert balance.pending_balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_concurrent_complete_only_assigned(self, core: DispatchCore) -> None:
        booking = await confirmed_trip(core, "w-1")
        await core.start_trip(booking.id, "w-1")

        results = await asyncio.gather(
            core.complete_trip(booking.id, "w-1"),
            core.complete_trip(booking.id, "w-2"),
            return_exceptions=True,
        )

        assert results[0].status == BookingStatus.COMPLETED
        assert isinstance(results[1], IllegalTransition)


class TestConcurrency:
    """Гонки за бронирование и исполнителя."""

    @pytest.mark.asyncio
    async def test_concurrent_accept_single_winner(self, core: DispatchCore) -> None:
        for i in range(5):
            await add_worker(core, f"w-{i}", 0.5 + i)
        booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")

        results = await asyncio.gather(
            *(core.accept_booking(booking.id, f"w-{i}") for i in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        assert len(winners) == 1
        assert all(isinstance(r, AlreadyAssigned) for r in results if isinstance(r, Exception))
        final = await core.get_booking(booking.id)
        assert final.assigned_worker == winners[0].assigned_worker
        reserved = [f"w-{i}" for i in range(5) if await core.availability.is_reserved(f"w-{i}")]
        assert reserved == [final.assigned_worker]

    @pytest.mark.asyncio
    async def test_worker_cannot_hold_two_bookings(self, core: DispatchCore) -> None:
        await add_worker(core, "w-1", 1.0)
        first = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")
        second = await core.create_booking("cust-2", PICKUP, DROP, "mini-truck")

        await core.accept_booking(first.id, "w-1")

        with pytest.raises(AlreadyAssigned):
            await core.accept_booking(second.id, "w-1")
        assert (await core.get_booking(second.id)).status == BookingStatus.SEARCHING

    @pytest.mark.asyncio
    async def test_released_worker_offered_again(self, core: DispatchCore) -> None:
        booking = await confirmed_trip(core)
        await core.cancel_booking(booking.id, "customer", "changed plans")

        again = await core.create_booking("cust-2", PICKUP, DROP, "mini-truck")

        assert again.notified_workers == ["w-1"]


class TestWalletPayments:
    """Оплата из кошелька и возвраты."""

    @pytest.mark.asyncio
    async def test_wallet_paid_booking_refunded_on_cancel(self, core: DispatchCore) -> None:
        await core.ledger.credit("cust-1", "500", TransactionCategory.WALLET_TOPUP)

        booking = await confirmed_trip(core, payment_method="wallet")
        assert (await core.get_wallet_balance("cust-1")).balance == Decimal("270.00")

        await core.cancel_booking(booking.id, "customer", "changed plans")
        await core.event_bus.drain(timeout=1.0)

        assert (await core.get_wallet_balance("cust-1")).balance == Decimal("500.00")
        assert (await core.ledger.verify_replay("cust-1")).ok

    @pytest.mark.asyncio
    async def test_wallet_paid_no_drivers_refunded(self, core: DispatchCore) -> None:
        await core.ledger.credit("cust-1", "230", TransactionCategory.WALLET_TOPUP)

        booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck", payment_method="wallet")
        await core.event_bus.drain(timeout=1.0)

        assert booking.status == BookingStatus.NO_DRIVERS_AVAILABLE
        assert (await core.get_wallet_balance("cust-1")).balance == Decimal("230.00")

    @pytest.mark.asyncio
    async def test_wallet_payment_requires_balance(self, core: DispatchCore) -> None:
        await add_worker(core, "w-1", 1.0)

        with pytest.raises(InsufficientBalance):
            await core.create_booking("cust-1", PICKUP, DROP, "mini-truck", payment_method="wallet")

        assert await core.searching_bookings() == []

    @pytest.mark.asyncio
    async def test_withdrawal_flow_and_history(self, core: DispatchCore) -> None:
        booking = await confirmed_trip(core)
        await core.start_trip(booking.id, "w-1")
        await core.complete_trip(booking.id, "w-1")
        await core.event_bus.drain(timeout=1.0)

        request = await core.request_withdrawal("w-1", "150", UPI)
        await core.ledger.complete_withdrawal("w-1", request.id, payout_reference="UTR1")

        balance = await core.get_wallet_balance("w-1")
        history = await core.get_wallet_history("w-1")
        assert balance.balance == Decimal("34.00")
        assert balance.total_earnings == Decimal("184.00")
        assert balance.total_withdrawals == Decimal("150.00")
        assert [tx.category for tx in history.items] == [
            TransactionCategory.WITHDRAWAL,
            TransactionCategory.TRIP_EARNING,
        ]


class TestWorkersAndValidation:
    """Исполнители, валидация и служебные операции."""

    @pytest.mark.asyncio
    async def test_invalid_input(self, core: DispatchCore) -> None:
        with pytest.raises(InvalidVehicleClass):
            await core.create_booking("cust-1", PICKUP, DROP, "rocket")
        with pytest.raises(InvalidCoordinate):
            await core.update_worker_location("w-1", 0.0, 190.0)
        with pytest.raises(WorkerNotFound):
            await core.update_worker_kyc("w-404", True)

    @pytest.mark.asyncio
    async def test_kyc_revocation_stops_offers(self, core: DispatchCore) -> None:
        await add_worker(core, "w-1", 1.0)
        events = await record_events(core)
        await core.update_worker_kyc("w-1", False, reason="document expired")

        booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")
        await core.event_bus.drain(timeout=1.0)

        assert booking.status == BookingStatus.NO_DRIVERS_AVAILABLE
        assert collect(events, "worker.kyc_updated")[0].reason == "document expired"

    @pytest.mark.asyncio
    async def test_expire_and_archive(self, core: DispatchCore) -> None:
        await add_worker(core, "w-1", 1.0)
        booking = await core.create_booking("cust-1", PICKUP, DROP, "mini-truck")
        assert [b.id for b in await core.searching_bookings()] == [booking.id]

        await core.expire_booking(booking.id)
        archived = await core.archive_booking(booking.id)

        assert archived.archived is True
        assert archived.status == BookingStatus.EXPIRED
        assert await core.availability.is_available("w-1")
