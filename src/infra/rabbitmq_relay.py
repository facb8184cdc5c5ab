# src/infra/rabbitmq_relay.py
"""
Ретрансляция доменных событий в RabbitMQ.
Внешние сервисы (push-уведомления, аналитика, админка) получают события
из topic exchange; routing_key совпадает с event_type.
"""

from __future__ import annotations

from datetime import datetime, timezone

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info
from src.infra.event_bus import ALL_EVENTS, EventBus, Subscription
from src.shared.events.base import DomainEvent


class RabbitMQRelay:
    """
    Подписчик шины событий, пересылающий каждое событие в exchange.

    Ошибки публикации логируются и не влияют на остальных подписчиков.
    """

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._subscription: Subscription | None = None
        self._exchange_name = "dispatch.events"
        self.published = 0

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    async def start(self, url: str | None = None, exchange_name: str | None = None) -> None:
        """
        Подключается к RabbitMQ и подписывается на все события шины.

        Args:
            url: URL RabbitMQ (если None, берётся из конфига)
            exchange_name: Имя exchange
        """
        if self.is_connected:
            return

        if url is None:
            from src.config import settings
            url = settings.rabbitmq.url
            exchange_name = exchange_name or settings.rabbitmq.RABBITMQ_EXCHANGE

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )
        self._subscription = await self._event_bus.subscribe(
            ALL_EVENTS, self.forward, name="rabbitmq_relay"
        )

        await log_info(f"Ретрансляция событий в {self._exchange_name} запущена", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Отписывается от шины и закрывает соединение."""
        if self._subscription is not None:
            await self._event_bus.unsubscribe(self._subscription)
            self._subscription = None

        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def forward(self, event: DomainEvent) -> None:
        """Публикует одно событие в exchange."""
        if not self.is_connected or self._exchange is None:
            await log_error(f"Событие {event.event_type} не отправлено: нет соединения с RabbitMQ")
            return

        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            message_id=event.event_id,
            timestamp=datetime.now(timezone.utc),
            type=event.event_type,
        )
        await self._exchange.publish(message, routing_key=event.event_type)
        self.published += 1

        await log_info(f"Событие отправлено в RabbitMQ: {event.event_type}", type_msg=TypeMsg.DEBUG)
