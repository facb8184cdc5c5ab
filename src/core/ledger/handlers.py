# src/core/ledger/handlers.py
"""
Подписчики кошельков на события бронирований.
Заработок исполнителя и возвраты заказчику проводятся здесь,
а не внутри переходов бронирования.
"""

from __future__ import annotations

from src.common.constants import AccountType, TransactionCategory, TypeMsg
from src.common.logger import log_info
from src.common.money import ZERO
from src.core.bookings.fares import FareCalculator
from src.core.ledger.service import LedgerService
from src.infra.event_bus import EventBus, Subscription
from src.shared.events import (
    BookingCancelled,
    BookingExpired,
    NoDriversAvailable,
    TripCompleted,
)


class LedgerEventHandlers:
    """Начисления по событиям TripCompleted и возвраты по отменам."""

    def __init__(self, ledger: LedgerService, fare_calculator: FareCalculator | None = None) -> None:
        self._ledger = ledger
        self._fares = fare_calculator or FareCalculator()
        self._subscriptions: list[Subscription] = []

    async def register(self, event_bus: EventBus) -> list[Subscription]:
        """Подписывает обработчики на шину."""
        self._subscriptions = [
            await event_bus.subscribe(TripCompleted, self.on_trip_completed, name="ledger.trip_completed"),
            await event_bus.subscribe(BookingCancelled, self.on_refundable, name="ledger.booking_cancelled"),
            await event_bus.subscribe(BookingExpired, self.on_refundable, name="ledger.booking_expired"),
            await event_bus.subscribe(NoDriversAvailable, self.on_refundable, name="ledger.no_drivers"),
        ]
        return self._subscriptions

    async def unregister(self, event_bus: EventBus) -> None:
        for subscription in self._subscriptions:
            await event_bus.unsubscribe(subscription)
        self._subscriptions = []

    async def on_trip_completed(self, event: TripCompleted) -> None:
        """Доля исполнителя: стоимость за вычетом комиссии платформы."""
        earning = self._fares.worker_share(event.fare_total)
        if earning <= ZERO:
            return

        tx = await self._ledger.credit_once(
            event.worker_id,
            earning,
            TransactionCategory.TRIP_EARNING,
            reference=event.booking_id,
            description=f"Trip {event.booking_code}",
            account_type=AccountType.WORKER,
        )
        if tx is not None:
            await log_info(
                f"Исполнителю {event.worker_id} начислено {earning} за {event.booking_code}",
                type_msg=TypeMsg.INFO,
            )

    async def on_refundable(self, event: BookingCancelled | BookingExpired | NoDriversAvailable) -> None:
        """Возврат оплаты из кошелька, если бронирование не состоялось."""
        if event.refund_amount <= ZERO:
            return

        tx = await self._ledger.credit_once(
            event.requester_id,
            event.refund_amount,
            TransactionCategory.REFUND,
            reference=event.booking_id,
            description=f"Refund {event.booking_code}",
            account_type=AccountType.CUSTOMER,
        )
        if tx is not None:
            await log_info(
                f"Заказчику {event.requester_id} возвращено {event.refund_amount} за {event.booking_code}",
                type_msg=TypeMsg.INFO,
            )
