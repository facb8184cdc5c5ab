# tests/worker/test_base_worker.py
"""
Тесты базового воркера.
"""

from __future__ import annotations

import asyncio

import pytest

from src.worker.base import BaseWorker


class CountingWorker(BaseWorker):
    """Воркер, считающий проходы и падающий по запросу."""

    def __init__(self, fail_on: set[int] | None = None) -> None:
        super().__init__(interval=0.01)
        self.fail_on = fail_on or set()
        self.calls = 0
        self.ran = asyncio.Event()

    @property
    def name(self) -> str:
        return "counting"

    async def run_once(self) -> None:
        self.calls += 1
        if self.calls >= 3:
            self.ran.set()
        if self.calls in self.fail_on:
            raise RuntimeError("boom")


class TestBaseWorker:
    """Тесты BaseWorker."""

    @pytest.mark.asyncio
    async def test_tick_counts_runs(self) -> None:
        worker = CountingWorker()
        await worker._tick()
        assert worker.runs == 1
        assert worker.errors == 0

    @pytest.mark.asyncio
    async def test_errors_do_not_stop_worker(self) -> None:
        worker = CountingWorker(fail_on={1})

        await worker.start()
        await asyncio.wait_for(worker.ran.wait(), timeout=2.0)
        await worker.stop()

        assert worker.errors == 1
        assert worker.runs >= 2
        assert worker.is_running is False

    @pytest.mark.asyncio
    async def test_start_twice_and_stop_idle(self) -> None:
        worker = CountingWorker()
        await worker.stop()

        await worker.start()
        task = worker._task
        await worker.start()

        assert worker._task is task
        await worker.stop()
        assert worker._task is None
