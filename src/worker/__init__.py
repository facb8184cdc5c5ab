"""
Фоновые воркеры ядра: очистка гео-индекса и истечение предложений.
"""

from src.worker.base import BaseWorker
from src.worker.expiry import OfferExpiryScheduler
from src.worker.sweeper import LocationSweeper

__all__ = ["BaseWorker", "LocationSweeper", "OfferExpiryScheduler"]
