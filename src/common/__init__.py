# src/common/__init__.py
"""
Общие утилиты: константы, ошибки, блокировки, логгер, тексты уведомлений.
"""

from src.common.logger import get_logger, log_info, log_error, log_warning, log_debug, setup_logging
from src.common.constants import TypeMsg
from src.common.localization import get_text, load_lang_dict
from src.common.locks import KeyedLock

__all__ = [
    "get_logger",
    "log_info",
    "log_error",
    "log_warning",
    "log_debug",
    "setup_logging",
    "TypeMsg",
    "get_text",
    "load_lang_dict",
    "KeyedLock",
]
