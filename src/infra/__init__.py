# src/infra/__init__.py
"""
Инфраструктурный слой.
Шина событий и внешние хранилища: PostgreSQL, Redis, RabbitMQ.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.redis_client import RedisClient, get_redis
from src.infra.event_bus import EventBus, Subscription, get_event_bus

__all__ = [
    "DatabaseManager",
    "get_db",
    "RedisClient",
    "get_redis",
    "EventBus",
    "Subscription",
    "get_event_bus",
]
