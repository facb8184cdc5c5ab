# src/worker/sweeper.py
"""
Воркер очистки гео-индекса от устаревших позиций.
"""

from __future__ import annotations

from src.common.constants import TypeMsg
from src.common.logger import log_info
from src.core.geo.service import GeoIndex
from src.worker.base import BaseWorker


class LocationSweeper(BaseWorker):
    """Удаляет позиции исполнителей, не обновлявшиеся дольше TTL."""

    def __init__(self, geo_index: GeoIndex, interval: float | None = None) -> None:
        if interval is None:
            from src.config import settings
            interval = settings.geo.SWEEP_INTERVAL_SECONDS
        super().__init__(interval)
        self._geo = geo_index
        self.removed = 0

    @property
    def name(self) -> str:
        return "location_sweeper"

    async def run_once(self) -> None:
        stale = await self._geo.sweep()
        if stale:
            self.removed += len(stale)
            await log_info(
                f"Из гео-индекса удалено {len(stale)} исполнителей без обновлений",
                type_msg=TypeMsg.INFO,
            )
