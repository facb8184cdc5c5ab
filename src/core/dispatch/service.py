# src/core/dispatch/service.py
"""
Фасад ядра диспетчеризации.

Собирает гео-индекс, реестр доступности, подбор, бронирования и кошельки
вокруг одной шины событий и предоставляет внешний API ядра.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from src.common.constants import (
    BookingStatus,
    PaymentMethod,
    TransactionCategory,
    TypeMsg,
)
from src.common.exceptions import PersistenceFailure
from src.common.logger import log_error, log_info
from src.core.availability.directory import WorkerDirectory, WorkerProfile
from src.core.availability.service import AvailabilityRegistry, RedisAvailabilityRegistry
from src.core.bookings.fares import FareCalculator, parse_vehicle_class
from src.core.bookings.models import BookingRecord, GeoPoint, Requirements, utc_now
from src.core.bookings.repository import (
    BookingRepository,
    InMemoryBookingRepository,
    PostgresBookingRepository,
)
from src.core.bookings.service import BookingService
from src.core.geo.distance import DistanceOracle, HaversineDistanceOracle, build_distance_oracle
from src.core.geo.service import GeoIndex, RedisGeoIndex, WorkerLocation
from src.core.ledger.handlers import LedgerEventHandlers
from src.core.ledger.models import BalanceSnapshot, HistoryPage, PayoutDetails, WithdrawalRequest
from src.core.ledger.repository import (
    InMemoryWalletRepository,
    PostgresWalletRepository,
    WalletRepository,
)
from src.core.ledger.service import LedgerService
from src.core.matching.service import Matcher
from src.core.notifications.service import NotificationService, PushTransport
from src.infra.event_bus import EventBus, EventHandler, Subscription
from src.infra.rabbitmq_relay import RabbitMQRelay
from src.shared.events import (
    DomainEvent,
    KYCUpdated,
    WorkerAvailabilityChanged,
    WorkerLocationUpdated,
)


class DispatchCore:
    """
    Внешний API ядра.

    Example:
        core = DispatchCore.in_memory()
        await core.start()
        booking = await core.create_booking("cust-1", (19.07, 72.87), (19.1, 72.9), "mini-truck")
    """

    def __init__(
        self,
        *,
        geo_index: GeoIndex,
        availability: AvailabilityRegistry,
        directory: WorkerDirectory,
        booking_repository: BookingRepository,
        wallet_repository: WalletRepository,
        event_bus: EventBus,
        distance_oracle: DistanceOracle | None = None,
        fare_calculator: FareCalculator | None = None,
        push_transport: PushTransport | None = None,
        search_settings=None,
        ledger_settings=None,
        clock=utc_now,
    ) -> None:
        self.event_bus = event_bus
        self.geo = geo_index
        self.availability = availability
        self.directory = directory
        self.fares = fare_calculator or FareCalculator()
        self.distance_oracle = distance_oracle or HaversineDistanceOracle()

        self.bookings = BookingService(
            booking_repository,
            availability,
            event_bus,
            fare_calculator=self.fares,
            distance_oracle=self.distance_oracle,
            clock=clock,
        )
        self.matcher = Matcher(
            self.bookings,
            geo_index,
            availability,
            directory,
            event_bus,
            fare_calculator=self.fares,
            search_settings=search_settings,
        )
        self.ledger = LedgerService(
            wallet_repository,
            event_bus,
            ledger_settings=ledger_settings,
            currency=self.fares.currency,
            clock=clock,
        )
        self.ledger_handlers = LedgerEventHandlers(self.ledger, self.fares)
        self.notifications = NotificationService(push_transport, directory)

        self._relay: RabbitMQRelay | None = None
        self._started = False

    @classmethod
    def in_memory(cls, **overrides: Any) -> "DispatchCore":
        """Ядро целиком в памяти процесса."""
        components: dict[str, Any] = {
            "geo_index": GeoIndex(),
            "availability": AvailabilityRegistry(),
            "directory": WorkerDirectory(),
            "booking_repository": InMemoryBookingRepository(),
            "wallet_repository": InMemoryWalletRepository(),
            "event_bus": EventBus(),
        }
        components.update(overrides)
        return cls(**components)

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def start(self, enable_relay: bool | None = None) -> None:
        """Подписывает кошельки, уведомления и (опционально) RabbitMQ на шину."""
        if self._started:
            return

        await self.ledger_handlers.register(self.event_bus)
        await self.notifications.register(self.event_bus)

        if enable_relay is None:
            from src.config import settings
            enable_relay = settings.rabbitmq.RABBITMQ_ENABLED
        if enable_relay:
            self._relay = RabbitMQRelay(self.event_bus)
            await self._relay.start()

        self._started = True
        await log_info("Ядро диспетчеризации запущено", type_msg=TypeMsg.INFO)

    async def close(self, timeout: float | None = None) -> None:
        """Дожидается подписчиков и освобождает ресурсы."""
        await self.event_bus.close(timeout)
        if self._relay is not None:
            await self._relay.stop()
            self._relay = None
        await self.distance_oracle.close()
        self._started = False
        await log_info("Ядро диспетчеризации остановлено", type_msg=TypeMsg.INFO)

    async def subscribe(
        self,
        event_type: str | type[DomainEvent],
        handler: EventHandler,
        name: str | None = None,
    ) -> Subscription:
        return await self.event_bus.subscribe(event_type, handler, name)

    # =========================================================================
    # БРОНИРОВАНИЯ
    # =========================================================================

    async def create_booking(
        self,
        requester_id: str,
        pickup: GeoPoint | dict[str, Any] | tuple[float, float],
        drop: GeoPoint | dict[str, Any] | tuple[float, float],
        vehicle_class: str,
        requirements: Requirements | dict[str, Any] | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.COD,
    ) -> BookingRecord:
        """
        Создаёт бронирование и сразу запускает подбор.
        Оплата из кошелька списывается до сохранения бронирования.

        Returns:
            Бронирование в статусе searching или no_drivers_available

        Raises:
            InvalidVehicleClass: неизвестный класс транспорта
            InvalidCoordinate: координаты вне диапазона
            InsufficientBalance: не хватает средств в кошельке
        """
        booking = await self.bookings.prepare(
            requester_id, pickup, drop, vehicle_class, requirements, payment_method
        )

        if booking.is_wallet_paid:
            await self.ledger.debit(
                requester_id,
                booking.fare.total,
                TransactionCategory.TRIP_PAYMENT,
                reference=booking.id,
                description=f"Booking {booking.booking_code}",
            )

        try:
            await self.bookings.create(booking)
        except PersistenceFailure:
            if booking.is_wallet_paid:
                await log_error(f"Бронирование {booking.booking_code} не сохранено, возврат оплаты")
                await self.ledger.credit(
                    requester_id,
                    booking.fare.total,
                    TransactionCategory.REFUND,
                    reference=booking.id,
                    description=f"Booking {booking.booking_code} not created",
                )
            raise

        await self.matcher.match(booking.id)
        return await self.bookings.get(booking.id)

    async def get_booking(self, booking_id: str) -> BookingRecord:
        return await self.bookings.get(booking_id)

    async def accept_booking(self, booking_id: str, worker_id: str) -> BookingRecord:
        return await self.bookings.accept(booking_id, worker_id)

    async def start_trip(self, booking_id: str, worker_id: str) -> BookingRecord:
        return await self.bookings.start(booking_id, worker_id)

    async def complete_trip(self, booking_id: str, worker_id: str) -> BookingRecord:
        return await self.bookings.complete(booking_id, worker_id)

    async def cancel_booking(self, booking_id: str, actor: str, reason: str) -> BookingRecord:
        return await self.bookings.cancel(booking_id, actor, reason)

    async def expire_booking(self, booking_id: str) -> BookingRecord:
        return await self.bookings.expire(booking_id)

    async def archive_booking(self, booking_id: str) -> BookingRecord:
        return await self.bookings.archive(booking_id)

    async def searching_bookings(self) -> list[BookingRecord]:
        return await self.bookings.find_by_status(BookingStatus.SEARCHING)

    # =========================================================================
    # ИСПОЛНИТЕЛИ
    # =========================================================================

    async def update_worker_location(self, worker_id: str, lat: float, lng: float) -> WorkerLocation:
        """
        Raises:
            InvalidCoordinate: координаты вне диапазона
        """
        location = await self.geo.upsert(worker_id, lat, lng)
        await self.event_bus.publish(WorkerLocationUpdated(
            worker_id=worker_id,
            lat=location.lat,
            lng=location.lng,
        ))
        return location

    async def set_worker_availability(self, worker_id: str, online: bool) -> None:
        await self.availability.set_available(worker_id, online)
        await self.event_bus.publish(WorkerAvailabilityChanged(worker_id=worker_id, online=online))
        await log_info(
            f"Исполнитель {worker_id} {'на линии' if online else 'не на линии'}",
            type_msg=TypeMsg.DEBUG,
        )

    async def register_worker(
        self,
        worker_id: str,
        vehicle_class: str,
        kyc_verified: bool = False,
        name: str | None = None,
        language: str = "en",
    ) -> WorkerProfile:
        """
        Raises:
            InvalidVehicleClass: неизвестный класс транспорта
        """
        profile = WorkerProfile(
            worker_id=worker_id,
            vehicle_class=parse_vehicle_class(vehicle_class),
            kyc_verified=kyc_verified,
            name=name,
            language=language,
        )
        return await self.directory.register(profile)

    async def update_worker_kyc(self, worker_id: str, verified: bool, reason: str | None = None) -> WorkerProfile:
        """
        Raises:
            WorkerNotFound: исполнитель не зарегистрирован
        """
        profile = await self.directory.set_kyc(worker_id, verified)
        await self.event_bus.publish(KYCUpdated(worker_id=worker_id, kyc_verified=verified, reason=reason))
        return profile

    # =========================================================================
    # КОШЕЛЬКИ
    # =========================================================================

    async def get_wallet_balance(self, account_id: str) -> BalanceSnapshot:
        return await self.ledger.get_balance(account_id)

    async def request_withdrawal(
        self,
        account_id: str,
        amount: Decimal | int | float | str,
        payout_details: PayoutDetails | dict[str, Any],
    ) -> WithdrawalRequest:
        return await self.ledger.request_withdrawal(account_id, amount, payout_details)

    async def get_wallet_history(
        self,
        account_id: str,
        page: int = 1,
        page_size: int | None = None,
    ) -> HistoryPage:
        return await self.ledger.get_history(account_id, page, page_size)


async def build_dispatch_core(push_transport: PushTransport | None = None) -> DispatchCore:
    """
    Собирает ядро по настройкам: гео-индекс в памяти или Redis,
    хранилища в памяти или PostgreSQL.
    """
    from src.config import settings

    if settings.geo.GEO_BACKEND == "redis":
        from src.infra.redis_client import init_redis

        redis = await init_redis()
        geo_index = RedisGeoIndex(redis)
        availability = RedisAvailabilityRegistry(redis)
    else:
        geo_index = GeoIndex()
        availability = AvailabilityRegistry()

    if settings.storage.STORAGE_BACKEND == "postgres":
        from src.infra.database import init_db

        db = await init_db()
        booking_repository = PostgresBookingRepository(db)
        wallet_repository = PostgresWalletRepository(db)
    else:
        booking_repository = InMemoryBookingRepository()
        wallet_repository = InMemoryWalletRepository()

    await log_info(
        f"Бэкенды: гео={settings.geo.GEO_BACKEND}, хранилище={settings.storage.STORAGE_BACKEND}",
        type_msg=TypeMsg.INFO,
    )
    return DispatchCore(
        geo_index=geo_index,
        availability=availability,
        directory=WorkerDirectory(),
        booking_repository=booking_repository,
        wallet_repository=wallet_repository,
        event_bus=EventBus(),
        distance_oracle=build_distance_oracle(),
        push_transport=push_transport,
    )
