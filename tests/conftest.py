# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "")

from src.config.loader import EventSettings, LedgerSettings, SearchSettings  # noqa: E402
from src.core.availability.directory import WorkerDirectory  # noqa: E402
from src.core.availability.service import AvailabilityRegistry  # noqa: E402
from src.core.bookings.fares import FareCalculator  # noqa: E402
from src.core.bookings.repository import InMemoryBookingRepository  # noqa: E402
from src.core.dispatch.service import DispatchCore  # noqa: E402
from src.core.geo.distance import RouteEstimate  # noqa: E402
from src.core.geo.service import GeoIndex  # noqa: E402
from src.core.ledger.repository import InMemoryWalletRepository  # noqa: E402
from src.core.notifications.service import PushMessage, PushTransport  # noqa: E402
from src.infra.event_bus import EventBus  # noqa: E402

# Координаты из сценариев: Мумбаи
PICKUP = (19.07, 72.87)
DROP = (19.10, 72.90)


# =============================================================================
# ВСПОМОГАТЕЛЬНЫЕ КЛАССЫ
# =============================================================================

class FakeClock:
    """Управляемые часы для тестов."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FixedDistanceOracle:
    """Оракул расстояний с заданным ответом."""

    def __init__(self, distance_km: float = 10.0, duration_minutes: float = 30.0) -> None:
        self.distance_km = distance_km
        self.duration_minutes = duration_minutes
        self.calls = 0

    async def estimate(self, origin, destination) -> RouteEstimate:
        self.calls += 1
        return RouteEstimate(self.distance_km, self.duration_minutes, "fixed")

    async def close(self) -> None:
        pass


class RecordingTransport(PushTransport):
    """Транспорт, складывающий уведомления в список."""

    def __init__(self) -> None:
        self.messages: list[PushMessage] = []

    async def send(self, message: PushMessage) -> None:
        self.messages.append(message)

    def for_recipient(self, recipient_id: str) -> list[PushMessage]:
        return [m for m in self.messages if m.recipient_id == recipient_id]


def offset_point(lat: float, lng: float, km_north: float) -> tuple[float, float]:
    """Точка в km_north километрах к северу."""
    return lat + km_north / 111.195, lng


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture(scope="session")
def lang_dict_path(project_root: Path) -> Path:
    """Путь к файлу локализации."""
    return project_root / "config" / "lang_dict.json"


@pytest.fixture
def search_settings() -> SearchSettings:
    return SearchSettings(
        SEARCH_RADIUS_KM=10.0,
        SEARCH_RADIUS_MAX_KM=10.0,
        SEARCH_RADIUS_STEP_KM=5.0,
        MAX_DRIVERS_TO_NOTIFY=5,
        CANDIDATE_POOL_SIZE=50,
    )


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        WITHDRAWAL_MIN_AMOUNT=Decimal("100"),
        WITHDRAWAL_MAX_AMOUNT=Decimal("50000"),
        TRANSACTION_WINDOW=500,
        HISTORY_PAGE_SIZE=20,
    )


@pytest.fixture
def event_settings() -> EventSettings:
    return EventSettings(DRAIN_TIMEOUT_SECONDS=1.0)


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.geoadd = AsyncMock(return_value=1)
    redis.geopos = AsyncMock(return_value=None)
    redis.geosearch = AsyncMock(return_value=[])
    redis.georem = AsyncMock(return_value=1)
    redis.georem_if_seen = AsyncMock(return_value=True)
    redis.hget = AsyncMock(return_value=None)
    redis.hset = AsyncMock(return_value=1)
    redis.hgetall = AsyncMock(return_value={})
    redis.hdel = AsyncMock(return_value=1)
    redis.sadd = AsyncMock(return_value=1)
    redis.srem = AsyncMock(return_value=1)
    redis.sismember = AsyncMock(return_value=False)
    redis.smembers = AsyncMock(return_value=set())
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.publish_many = AsyncMock(return_value=None)
    event_bus.subscribe = AsyncMock(return_value=None)
    return event_bus


@pytest_asyncio.fixture
async def event_bus() -> AsyncGenerator[EventBus, None]:
    """Настоящая шина событий, закрываемая после теста."""
    bus = EventBus()
    yield bus
    await bus.close(timeout=1.0)


# =============================================================================
# ФИКСТУРЫ ЯДРА
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def distance_oracle() -> FixedDistanceOracle:
    return FixedDistanceOracle()


@pytest.fixture
def fare_calculator() -> FareCalculator:
    return FareCalculator()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest_asyncio.fixture
async def core(
    event_bus: EventBus,
    clock: FakeClock,
    distance_oracle: FixedDistanceOracle,
    transport: RecordingTransport,
    search_settings: SearchSettings,
    ledger_settings: LedgerSettings,
) -> AsyncGenerator[DispatchCore, None]:
    """Ядро целиком в памяти, подписчики запущены."""
    dispatch = DispatchCore(
        geo_index=GeoIndex(ttl_seconds=3600, clock=clock),
        availability=AvailabilityRegistry(),
        directory=WorkerDirectory(),
        booking_repository=InMemoryBookingRepository(),
        wallet_repository=InMemoryWalletRepository(),
        event_bus=event_bus,
        distance_oracle=distance_oracle,
        push_transport=transport,
        search_settings=search_settings,
        ledger_settings=ledger_settings,
        clock=clock,
    )
    await dispatch.start(enable_relay=False)
    yield dispatch
    await event_bus.drain(timeout=1.0)


async def add_worker(
    dispatch: DispatchCore,
    worker_id: str,
    km_north: float,
    vehicle_class: str = "mini-truck",
    kyc_verified: bool = True,
    online: bool = True,
    origin: tuple[float, float] = PICKUP,
) -> None:
    """Регистрирует исполнителя рядом с точкой подачи."""
    await dispatch.register_worker(worker_id, vehicle_class, kyc_verified=kyc_verified)
    lat, lng = offset_point(origin[0], origin[1], km_north)
    await dispatch.update_worker_location(worker_id, lat, lng)
    if online:
        await dispatch.set_worker_availability(worker_id, True)


def collect(bus_events: list[Any], event_type: str) -> list[Any]:
    return [e for e in bus_events if e.event_type == event_type]
