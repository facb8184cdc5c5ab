# src/worker/base.py
"""
Базовый класс для фоновых воркеров ядра.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from src.common.logger import log_info, log_error
from src.common.constants import TypeMsg


class BaseWorker(ABC):
    """
    Базовый класс для периодических воркеров.
    Вызывает run_once() раз в interval секунд до остановки.
    """

    def __init__(self, interval: float) -> None:
        """
        Инициализирует воркер.

        Args:
            interval: Пауза между запусками (секунды)
        """
        self.interval = interval
        self.runs = 0
        self.errors = 0
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Имя воркера."""
        pass

    @abstractmethod
    async def run_once(self) -> None:
        """Один проход воркера."""
        pass

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает воркер."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop(), name=f"worker:{self.name}")
        await log_info(f"Воркер {self.name} запущен (интервал {self.interval} с)", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер."""
        if not self._running:
            return

        self._running = False
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _loop(self) -> None:
        while self._running:
            await self._tick()
            await asyncio.sleep(self.interval)

    async def _tick(self) -> None:
        """Один проход с учётом ошибок: сбой прохода не останавливает воркер."""
        try:
            await self.run_once()
            self.runs += 1
        except Exception as e:
            self.errors += 1
            await log_error(f"Ошибка в воркере {self.name}: {e}", exc_info=True)
