# src/infra/event_bus.py
"""
Внутрипроцессная шина доменных событий.

Каждый подписчик получает собственную FIFO-очередь и собственную задачу,
поэтому медленный или падающий обработчик не задерживает публикатора
и других подписчиков. Порядок доставки одному подписчику совпадает
с порядком публикации.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable
from uuid import uuid4

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning
from src.shared.events.base import DomainEvent

ALL_EVENTS = "*"

# Обработчик может быть корутиной или обычной функцией
EventHandler = Callable[[DomainEvent], Awaitable[None] | None]


class Subscription:
    """Подписка одного обработчика на один тип событий (или на все)."""

    def __init__(self, event_type: str, handler: EventHandler, name: str | None = None) -> None:
        self.id = str(uuid4())
        self.event_type = event_type
        self.handler = handler
        self.name = name or getattr(handler, "__qualname__", repr(handler))
        self.queue: asyncio.Queue[DomainEvent] = asyncio.Queue()
        self.task: asyncio.Task[None] | None = None
        self.delivered = 0
        self.failed = 0

    def matches(self, event: DomainEvent) -> bool:
        return self.event_type == ALL_EVENTS or self.event_type == event.event_type

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()

    def __repr__(self) -> str:
        return f"Subscription({self.event_type!r}, {self.name!r})"


class EventBus:
    """
    Шина событий publish/subscribe.

    - publish() никогда не ждёт обработчиков и не падает из-за них
    - ошибки обработчиков логируются и изолируются
    - drain() дожидается обработки всего опубликованного, включая
      события, опубликованные самими обработчиками
    """

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    # =========================================================================
    # ПОДПИСКА
    # =========================================================================

    async def subscribe(
        self,
        event_type: str | type[DomainEvent],
        handler: EventHandler,
        name: str | None = None,
    ) -> Subscription:
        """
        Подписывает обработчик на события типа event_type ("*" — на все).

        Args:
            event_type: Строковый тип события или класс события
            handler: Обработчик события
            name: Имя подписчика для логов

        Returns:
            Subscription, который можно передать в unsubscribe()
        """
        if isinstance(event_type, type):
            event_type = event_type.model_fields["event_type"].default

        subscription = Subscription(event_type, handler, name)
        subscription.task = asyncio.create_task(
            self._run(subscription),
            name=f"event-subscriber:{subscription.name}",
        )
        self._subscriptions.append(subscription)

        await log_info(
            f"Подписка на события: {event_type} ({subscription.name})",
            type_msg=TypeMsg.DEBUG,
        )
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """
        Отменяет одну подписку.
        Необработанные события из её очереди отбрасываются.
        """
        if subscription not in self._subscriptions:
            return
        self._subscriptions.remove(subscription)

        dropped = subscription.queue.qsize()
        if subscription.task is not None:
            subscription.task.cancel()
            try:
                await subscription.task
            except asyncio.CancelledError:
                pass
        self._settle(dropped)

        await log_info(
            f"Подписка отменена: {subscription.event_type} ({subscription.name})",
            type_msg=TypeMsg.DEBUG,
        )

    # =========================================================================
    # ПУБЛИКАЦИЯ
    # =========================================================================

    async def publish(self, event: DomainEvent) -> None:
        """
        Ставит событие в очередь каждого подходящего подписчика.
        Не ждёт обработки.
        """
        if self._closed:
            await log_warning(f"Шина закрыта, событие отброшено: {event.event_type}")
            return

        for subscription in self._subscriptions:
            if subscription.matches(event):
                self._in_flight += 1
                self._idle.clear()
                subscription.queue.put_nowait(event)

    async def publish_many(self, events: list[DomainEvent]) -> None:
        """Публикует события в заданном порядке."""
        for event in events:
            await self.publish(event)

    async def _run(self, subscription: Subscription) -> None:
        """Цикл доставки событий одному подписчику."""
        while True:
            event = await subscription.queue.get()
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
                subscription.delivered += 1
            except asyncio.CancelledError:
                self._settle(1)
                raise
            except Exception as e:
                subscription.failed += 1
                await log_error(
                    f"Ошибка в обработчике {subscription.name} для {event.event_type}: {e}",
                    extra={"event_id": event.event_id},
                    exc_info=True,
                )
            self._settle(1)

    def _settle(self, count: int) -> None:
        self._in_flight = max(0, self._in_flight - count)
        if self._in_flight == 0:
            self._idle.set()

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Ждёт, пока все опубликованные события будут обработаны.

        Returns:
            False, если таймаут истёк раньше
        """
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            await log_warning(f"Не дождались обработки событий: в очередях {self._in_flight}")
            return False

    async def close(self, timeout: float | None = None) -> None:
        """Дожидается очередей (с таймаутом) и останавливает всех подписчиков."""
        if timeout is None:
            from src.config import settings
            timeout = settings.events.DRAIN_TIMEOUT_SECONDS

        await self.drain(timeout)
        self._closed = True
        for subscription in list(self._subscriptions):
            await self.unsubscribe(subscription)
        await log_info("Шина событий остановлена", type_msg=TypeMsg.INFO)

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    @property
    def pending(self) -> int:
        """Количество событий, ещё не обработанных подписчиками."""
        return self._in_flight

    def stats(self) -> dict[str, Any]:
        return {
            "subscribers": len(self._subscriptions),
            "pending": self._in_flight,
            "delivered": sum(s.delivered for s in self._subscriptions),
            "failed": sum(s.failed for s in self._subscriptions),
        }


# Глобальный экземпляр
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """
    Возвращает глобальный экземпляр EventBus.
    """
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def close_event_bus() -> None:
    """Останавливает глобальную шину событий."""
    global _event_bus
    if _event_bus is not None:
        await _event_bus.close()
        _event_bus = None
