# src/worker/runner.py
"""
Запускалка фоновых воркеров ядра.
"""

from __future__ import annotations

import asyncio
from typing import List

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.core.dispatch.service import DispatchCore
from src.worker.base import BaseWorker
from src.worker.expiry import OfferExpiryScheduler
from src.worker.sweeper import LocationSweeper


def build_workers(core: DispatchCore, offer_timeout_seconds: int | None = None) -> List[BaseWorker]:
    """
    Воркеры для ядра: очистка гео-индекса всегда,
    истечение предложений только при заданном таймауте.
    """
    if offer_timeout_seconds is None:
        from src.config import settings
        offer_timeout_seconds = settings.search.OFFER_TIMEOUT_SECONDS

    workers: List[BaseWorker] = [LocationSweeper(core.geo)]
    if offer_timeout_seconds:
        workers.append(OfferExpiryScheduler(core.bookings, offer_timeout_seconds))
    return workers


async def run_workers(workers: List[BaseWorker], stop_event: asyncio.Event) -> None:
    """
    Запускает воркеры и держит их до stop_event.

    Args:
        workers: Воркеры для запуска
        stop_event: Событие остановки (выставляется обработчиком сигналов)
    """
    try:
        for worker in workers:
            await worker.start()

        await log_info(f"Запущено {len(workers)} воркеров", type_msg=TypeMsg.INFO)
        await stop_event.wait()
    finally:
        for worker in workers:
            await worker.stop()
        await log_info("Воркеры остановлены", type_msg=TypeMsg.INFO)
