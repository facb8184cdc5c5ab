# src/core/notifications/__init__.py
"""
Домен уведомлений.
Push-сообщения исполнителям и заказчикам по событиям бронирований.
"""

from src.core.notifications.service import (
    LoggingPushTransport,
    NotificationService,
    PushMessage,
    PushTransport,
)

__all__ = [
    "LoggingPushTransport",
    "NotificationService",
    "PushMessage",
    "PushTransport",
]
