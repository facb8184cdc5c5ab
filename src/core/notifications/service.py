# src/core/notifications/service.py
"""
Сервис уведомлений.
Превращает события бронирований в push-сообщения исполнителям и заказчикам.
Доставка выполняется внешним транспортом.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from src.common.constants import TypeMsg
from src.common.localization import FALLBACK_LANGUAGE, get_text
from src.common.logger import log_error, log_info
from src.core.availability.directory import WorkerDirectory
from src.infra.event_bus import EventBus, Subscription
from src.shared.events import (
    BookingAccepted,
    BookingCancelled,
    BookingExpired,
    NoDriversAvailable,
    OfferCancelled,
    OfferIssued,
    TripCompleted,
    TripStarted,
)


@dataclass
class PushMessage:
    """Готовое к отправке уведомление."""
    recipient_id: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


class PushTransport(ABC):
    """Канал доставки push-уведомлений."""

    @abstractmethod
    async def send(self, message: PushMessage) -> None:
        ...


class LoggingPushTransport(PushTransport):
    """Транспорт по умолчанию: пишет уведомление в лог."""

    async def send(self, message: PushMessage) -> None:
        await log_info(
            f"Push -> {message.recipient_id}: {message.title}",
            type_msg=TypeMsg.DEBUG,
            extra={"body": message.body, "data": message.data},
        )


class NotificationService:
    """
    Подписчик шины, формирующий локализованные уведомления.

    Ошибка доставки одному получателю не мешает остальным.
    """

    def __init__(
        self,
        transport: PushTransport | None = None,
        directory: WorkerDirectory | None = None,
        default_language: str = FALLBACK_LANGUAGE,
    ) -> None:
        self._transport = transport or LoggingPushTransport()
        self._directory = directory
        self._default_language = default_language
        self._subscriptions: list[Subscription] = []
        self.sent = 0
        self.failed = 0

    async def register(self, event_bus: EventBus) -> list[Subscription]:
        handlers = (
            (OfferIssued, self.on_offer_issued),
            (OfferCancelled, self.on_offer_cancelled),
            (NoDriversAvailable, self.on_no_drivers),
            (BookingAccepted, self.on_booking_accepted),
            (TripStarted, self.on_trip_started),
            (TripCompleted, self.on_trip_completed),
            (BookingCancelled, self.on_booking_cancelled),
            (BookingExpired, self.on_booking_expired),
        )
        self._subscriptions = [
            await event_bus.subscribe(event_cls, handler, name=f"notifications.{event_cls.__name__}")
            for event_cls, handler in handlers
        ]
        return self._subscriptions

    async def unregister(self, event_bus: EventBus) -> None:
        for subscription in self._subscriptions:
            await event_bus.unsubscribe(subscription)
        self._subscriptions = []

    # =========================================================================
    # ИСПОЛНИТЕЛИ
    # =========================================================================

    async def on_offer_issued(self, event: OfferIssued) -> None:
        await self.notify(
            event.worker_id,
            "OFFER_ISSUED",
            data={"booking_id": event.booking_id, "rank": event.rank},
            distance_km=round(event.distance_m / 1000, 1),
            pickup=event.pickup_address or f"{event.pickup_lat:.4f},{event.pickup_lng:.4f}",
            drop=event.drop_address or "-",
            incentive=event.incentive,
        )

    async def on_offer_cancelled(self, event: OfferCancelled) -> None:
        await self.notify(
            event.worker_id,
            "OFFER_CANCELLED",
            data={"booking_id": event.booking_id, "reason": event.reason},
            booking_code=event.booking_code,
        )

    # =========================================================================
    # ЗАКАЗЧИКИ
    # =========================================================================

    async def on_no_drivers(self, event: NoDriversAvailable) -> None:
        await self.notify(event.requester_id, "NO_DRIVERS", data={"booking_id": event.booking_id})

    async def on_booking_accepted(self, event: BookingAccepted) -> None:
        await self.notify(
            event.requester_id,
            "BOOKING_ACCEPTED",
            data={"booking_id": event.booking_id, "worker_id": event.worker_id},
            booking_code=event.booking_code,
        )

    async def on_trip_started(self, event: TripStarted) -> None:
        await self.notify(event.requester_id, "TRIP_STARTED", data={"booking_id": event.booking_id})

    async def on_trip_completed(self, event: TripCompleted) -> None:
        await self.notify(
            event.requester_id,
            "TRIP_COMPLETED",
            data={"booking_id": event.booking_id},
            fare=event.fare_total,
        )

    async def on_booking_cancelled(self, event: BookingCancelled) -> None:
        recipients = [event.requester_id]
        if event.worker_id is not None:
            recipients.append(event.worker_id)
        for recipient_id in recipients:
            await self.notify(
                recipient_id,
                "BOOKING_CANCELLED",
                data={"booking_id": event.booking_id, "actor": event.actor},
                booking_code=event.booking_code,
                reason=event.reason,
            )

    async def on_booking_expired(self, event: BookingExpired) -> None:
        await self.notify(
            event.requester_id,
            "BOOKING_EXPIRED",
            data={"booking_id": event.booking_id},
            booking_code=event.booking_code,
        )

    # =========================================================================
    # ОТПРАВКА
    # =========================================================================

    async def notify(
        self,
        recipient_id: str,
        key: str,
        data: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> bool:
        """
        Формирует и отправляет уведомление по ключу lang_dict.

        Returns:
            True, если транспорт принял сообщение
        """
        language = await self._language_for(recipient_id)
        message = PushMessage(
            recipient_id=recipient_id,
            title=get_text(f"{key}_TITLE", language, **kwargs),
            body=get_text(f"{key}_BODY", language, **kwargs),
            data=data or {},
        )
        try:
            await self._transport.send(message)
        except Exception as e:
            self.failed += 1
            await log_error(f"Не удалось отправить уведомление {key} получателю {recipient_id}: {e}")
            return False

        self.sent += 1
        return True

    async def _language_for(self, recipient_id: str) -> str:
        if self._directory is not None:
            profile = await self._directory.get(recipient_id)
            if profile is not None:
                return profile.language
        return self._default_language
