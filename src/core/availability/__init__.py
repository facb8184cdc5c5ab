"""Доступность исполнителей и справочник профилей."""

from src.core.availability.directory import WorkerDirectory, WorkerProfile
from src.core.availability.service import AvailabilityRegistry, RedisAvailabilityRegistry

__all__ = [
    "AvailabilityRegistry",
    "RedisAvailabilityRegistry",
    "WorkerDirectory",
    "WorkerProfile",
]
