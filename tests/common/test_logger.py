# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

import logging
import sys
from unittest.mock import patch

import pytest

from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    ColoredFormatter,
    JsonFormatter,
    SizeRotatingFileHandler,
    _get_caller_info,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
)
from src.common.constants import TypeMsg


def _record(level: int = logging.INFO, msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_basic_record(self) -> None:
        """Тест форматирования базовой записи."""
        result = JsonFormatter().format(_record())

        assert '"level": "INFO"' in result
        assert '"message": "Test message"' in result
        assert '"module": "test_module"' in result
        assert '"line": 10' in result

    def test_format_with_extra_data(self) -> None:
        """Тест форматирования записи с дополнительными данными."""
        record = _record(logging.WARNING)
        record.extra_data = {"booking_id": "b-1", "worker_id": "w-1"}

        result = JsonFormatter().format(record)

        assert '"extra"' in result
        assert '"booking_id": "b-1"' in result

    def test_format_with_exception(self) -> None:
        """Тест форматирования записи с исключением."""
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        result = JsonFormatter().format(_record(logging.ERROR, exc_info=exc_info))

        assert '"exception"' in result
        assert "ValueError" in result

    def test_non_ascii_message(self) -> None:
        """Кириллица не экранируется."""
        result = JsonFormatter().format(_record(msg="Бронирование создано"))
        assert "Бронирование создано" in result


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_contains_level_and_message(self) -> None:
        result = ColoredFormatter().format(_record())

        assert "[INFO]" in result
        assert "Test message" in result

    def test_format_with_caller_info(self) -> None:
        """Информация о вызывающем коде выводится в скобках."""
        record = _record()
        record.extra_data = {
            "caller_function": "accept",
            "caller_module": "src.core.bookings.service",
            "caller_file": "service.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "src.core.bookings.service.accept()" in result
        assert "service.py:42" in result


class TestSizeRotatingFileHandler:
    """Тесты ротации файлов логов."""

    def test_rollover_archives_current_file(self, tmp_path) -> None:
        handler = SizeRotatingFileHandler(str(tmp_path), max_bytes=50, logger_name="core")
        handler.setFormatter(logging.Formatter("%(message)s"))
        try:
            handler.emit(_record(msg="x" * 40))
            handler.emit(_record(msg="y" * 40))
        finally:
            handler.close()

        files = sorted(p.name for p in tmp_path.iterdir())
        assert "core.log" in files
        assert any(name.startswith("core_") for name in files)


class TestGetLogger:
    """Тесты для get_logger."""

    def test_logger_is_cached(self) -> None:
        assert get_logger("cache_test") is get_logger("cache_test")

    def test_logger_does_not_propagate(self) -> None:
        assert get_logger(DEFAULT_LOGGER_NAME).propagate is False


class TestCallerInfo:
    """Тесты для _get_caller_info."""

    def test_reports_calling_function(self) -> None:
        def some_service_method():
            return _get_caller_info()

        info = some_service_method()

        assert info["caller_function"] == "some_service_method"
        assert info["caller_file"] == "test_logger.py"


class TestAsyncLogFunctions:
    """Тесты асинхронных функций логирования."""

    @pytest.mark.asyncio
    async def test_log_info_levels(self) -> None:
        """type_msg выбирает уровень записи."""
        logger = get_logger()
        with patch.object(logger, "warning") as warning, patch.object(logger, "debug") as debug:
            await log_info("warn", type_msg=TypeMsg.WARNING)
            await log_info("dbg", type_msg=TypeMsg.DEBUG)

        warning.assert_called_once()
        debug.assert_called_once()

    @pytest.mark.asyncio
    async def test_extra_merged_with_caller(self) -> None:
        logger = get_logger()
        with patch.object(logger, "info") as info:
            await log_info("msg", extra={"booking_id": "b-1"})

        extra = info.call_args.kwargs["extra"]["extra_data"]
        assert extra["booking_id"] == "b-1"
        assert extra["caller_function"] == "test_extra_merged_with_caller"

    @pytest.mark.asyncio
    async def test_helpers(self) -> None:
        logger = get_logger()
        with patch.object(logger, "debug") as debug, \
                patch.object(logger, "warning") as warning, \
                patch.object(logger, "error") as error:
            await log_debug("d")
            await log_warning("w")
            await log_error("e", exc_info=True)

        debug.assert_called_once()
        warning.assert_called_once()
        assert error.call_args.kwargs["exc_info"] is True
