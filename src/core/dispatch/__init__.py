"""Фасад ядра диспетчеризации."""

from src.core.dispatch.service import DispatchCore, build_dispatch_core

__all__ = ["DispatchCore", "build_dispatch_core"]
