# src/core/__init__.py
"""
Доменный слой (Core Domain).
Гео-индекс, доступность, подбор, бронирования, кошельки.
"""

from src.core.dispatch import DispatchCore, build_dispatch_core

__all__ = [
    "DispatchCore",
    "build_dispatch_core",
]
