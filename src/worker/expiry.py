# src/worker/expiry.py
"""
Таймер истечения предложений.
Переводит в expired бронирования, которые слишком долго ждут ответа.
"""

from __future__ import annotations

from datetime import timedelta

from src.common.constants import BookingStatus, TypeMsg
from src.common.exceptions import IllegalTransition
from src.common.logger import log_info
from src.core.bookings.models import utc_now
from src.core.bookings.service import BookingService
from src.worker.base import BaseWorker


class OfferExpiryScheduler(BaseWorker):
    """
    Вызывает expire() для бронирований в searching старше timeout_seconds.
    Запускается, только если таймаут задан в настройках.
    """

    def __init__(
        self,
        bookings: BookingService,
        timeout_seconds: int,
        interval: float | None = None,
        clock=utc_now,
    ) -> None:
        if interval is None:
            from src.config import settings
            interval = settings.search.EXPIRY_CHECK_INTERVAL_SECONDS
        super().__init__(interval)
        self._bookings = bookings
        self._timeout = timedelta(seconds=timeout_seconds)
        self._clock = clock
        self.expired = 0

    @property
    def name(self) -> str:
        return "offer_expiry"

    async def run_once(self) -> None:
        deadline = self._clock() - self._timeout
        for booking in await self._bookings.find_by_status(BookingStatus.SEARCHING):
            if booking.last_transition_at > deadline:
                continue
            try:
                await self._bookings.expire(booking.id)
            except IllegalTransition:
                # Бронирование успели принять или отменить
                await log_info(
                    f"Бронирование {booking.booking_code} уже не в searching, истечение пропущено",
                    type_msg=TypeMsg.DEBUG,
                )
                continue
            self.expired += 1
