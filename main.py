#!/usr/bin/env python3
# main.py
"""
Главная точка входа ядра диспетчеризации.
Собирает ядро по конфигу, запускает подписчиков и фоновые воркеры.
"""

from __future__ import annotations

import asyncio
import signal

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.core.dispatch import build_dispatch_core
from src.infra.database import close_db
from src.infra.redis_client import close_redis
from src.worker.runner import build_workers, run_workers


# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None


def setup_signal_handlers() -> asyncio.Event:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))

    return _shutdown_event


async def main() -> None:
    """Запуск ядра до сигнала остановки."""
    setup_logging()
    stop_event = setup_signal_handlers()

    await log_info(
        f"Запуск {settings.system.PROJECT_NAME} (гео={settings.geo.GEO_BACKEND}, "
        f"хранилище={settings.storage.STORAGE_BACKEND})",
        type_msg=TypeMsg.INFO,
    )

    core = await build_dispatch_core()
    try:
        await core.start()
        await run_workers(build_workers(core), stop_event)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        await core.close()
        if settings.geo.GEO_BACKEND == "redis":
            await close_redis()
        if settings.storage.STORAGE_BACKEND == "postgres":
            await close_db()
        await log_info("Ядро остановлено", type_msg=TypeMsg.INFO)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
