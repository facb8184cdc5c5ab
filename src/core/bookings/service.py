# src/core/bookings/service.py
"""
Сервис бронирований: жизненный цикл и охраняемые переходы статусов.

Переходы одного бронирования сериализованы блокировкой по его id.
Проверки выполняются на одном чтении записи под блокировкой,
изменение сохраняется в хранилище до выхода из блокировки,
события публикуются уже после её освобождения.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from src.common.constants import (
    BookingStatus,
    CancelActor,
    PaymentMethod,
    TypeMsg,
)
from src.common.exceptions import (
    AlreadyAssigned,
    BookingNotFound,
    BookingUnavailable,
    IllegalTransition,
    PersistenceFailure,
)
from src.common.locks import KeyedLock
from src.common.logger import log_error, log_info, log_warning
from src.common.money import ZERO
from src.core.availability.service import AvailabilityRegistry
from src.core.bookings.fares import FareCalculator, parse_vehicle_class
from src.core.bookings.models import (
    BookingRecord,
    CancellationRecord,
    FareBreakdown,
    GeoPoint,
    Requirements,
    TimelineEntry,
    utc_now,
)
from src.core.bookings.repository import BookingRepository
from src.core.bookings.state_machine import CANCELLABLE_STATUSES, transition
from src.core.geo.distance import DistanceOracle, HaversineDistanceOracle
from src.core.geo.utils import validate_coordinates
from src.infra.event_bus import EventBus
from src.shared.events import (
    BookingAccepted,
    BookingCancelled,
    BookingExpired,
    BookingRequested,
    DomainEvent,
    NoDriversAvailable,
    OfferCancelled,
    TripCompleted,
    TripStarted,
)


def as_geo_point(value: GeoPoint | dict[str, Any] | tuple[float, float]) -> GeoPoint:
    """
    Приводит точку к GeoPoint и проверяет координаты.

    Raises:
        InvalidCoordinate: координаты вне диапазона
    """
    if isinstance(value, GeoPoint):
        point = value
    elif isinstance(value, tuple):
        point = GeoPoint(lat=value[0], lng=value[1])
    else:
        point = GeoPoint.model_validate(value)
    validate_coordinates(point.lat, point.lng)
    return point


class BookingService:
    """Владелец статуса бронирования."""

    def __init__(
        self,
        repository: BookingRepository,
        availability: AvailabilityRegistry,
        event_bus: EventBus,
        fare_calculator: FareCalculator | None = None,
        distance_oracle: DistanceOracle | None = None,
        clock=utc_now,
    ) -> None:
        self._repository = repository
        self._availability = availability
        self._event_bus = event_bus
        self._fares = fare_calculator or FareCalculator()
        self._oracle = distance_oracle or HaversineDistanceOracle()
        self._clock = clock
        self._locks = KeyedLock()

    @property
    def fares(self) -> FareCalculator:
        return self._fares

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    async def prepare(
        self,
        requester_id: str,
        pickup: GeoPoint | dict[str, Any] | tuple[float, float],
        drop: GeoPoint | dict[str, Any] | tuple[float, float],
        vehicle_class: str,
        requirements: Requirements | dict[str, Any] | None = None,
        payment_method: PaymentMethod | str = PaymentMethod.COD,
    ) -> BookingRecord:
        """
        Проверяет входные данные и считает стоимость. Ничего не сохраняет.
        Оракул расстояний вызывается здесь, до любых блокировок.

        Raises:
            InvalidVehicleClass: неизвестный класс транспорта
            InvalidCoordinate: координаты вне диапазона
        """
        vehicle = parse_vehicle_class(vehicle_class)
        pickup_point = as_geo_point(pickup)
        drop_point = as_geo_point(drop)
        if isinstance(requirements, dict):
            requirements = Requirements.model_validate(requirements)
        requirements = requirements or Requirements()

        route = await self._oracle.estimate(pickup_point.coordinates, drop_point.coordinates)
        fare = self._fares.calculate(vehicle, route, requirements)

        now = self._clock()
        return BookingRecord(
            requester_id=requester_id,
            vehicle_class=vehicle,
            pickup=pickup_point,
            drop=drop_point,
            requirements=requirements,
            distance_km=route.distance_km,
            duration_minutes=route.duration_minutes,
            fare=fare,
            payment_method=PaymentMethod(payment_method),
            timeline=[TimelineEntry(status=BookingStatus.PENDING, timestamp=now, note="Booking created")],
            created_at=now,
            updated_at=now,
        )

    async def create(self, booking: BookingRecord) -> BookingRecord:
        """Сохраняет подготовленное бронирование в статусе pending."""
        saved = await self._repository.create(booking)

        await log_info(
            f"Создано бронирование {saved.booking_code}: {saved.vehicle_class.value}, {saved.fare.total} {saved.fare.currency}",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": saved.id},
        )
        await self._event_bus.publish(BookingRequested(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            vehicle_class=saved.vehicle_class.value,
            pickup_lat=saved.pickup.lat,
            pickup_lng=saved.pickup.lng,
            drop_lat=saved.drop.lat,
            drop_lng=saved.drop.lng,
            fare_total=saved.fare.total,
            currency=saved.fare.currency,
            payment_method=saved.payment_method.value,
        ))
        return saved

    async def get(self, booking_id: str) -> BookingRecord:
        """
        Raises:
            BookingNotFound: бронирования нет
        """
        booking = await self._repository.get(booking_id)
        if booking is None:
            raise BookingNotFound(f"Бронирование {booking_id} не найдено", booking_id=booking_id)
        return booking

    async def find_by_status(self, status: BookingStatus) -> list[BookingRecord]:
        return await self._repository.find_by_status(status)

    # =========================================================================
    # ПОИСК ИСПОЛНИТЕЛЕЙ
    # =========================================================================

    async def begin_search(
        self,
        booking_id: str,
        worker_ids: list[str],
        fare: FareBreakdown | None = None,
    ) -> BookingRecord:
        """
        pending -> searching с записью списка предложенных исполнителей.

        Args:
            fare: пересчитанная стоимость (наценка за спрос), сохраняется
                тем же переходом
        """
        if not worker_ids:
            raise ValueError("Список исполнителей для предложения пуст")

        note = f"Offered to {len(worker_ids)} drivers"
        if fare is not None:
            note += f"; demand surge {fare.surge}, fare {fare.total}"

        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            updated = await self._transition(booking, BookingStatus.SEARCHING, note=note)
            updated.notified_workers = list(worker_ids)
            if fare is not None:
                updated.fare = fare
            return await self._persist(updated)

    async def mark_no_drivers(self, booking_id: str, search_radius_km: float) -> BookingRecord:
        """
        Подходящих исполнителей нет: pending -> searching -> no_drivers_available
        одним сохранением.
        """
        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            searching = await self._transition(booking, BookingStatus.SEARCHING, note="Searching for drivers")
            updated = await self._transition(
                searching,
                BookingStatus.NO_DRIVERS_AVAILABLE,
                note=f"No drivers found within {search_radius_km:g} km",
                actor=CancelActor.SYSTEM.value,
            )
            saved = await self._persist(updated)

        await log_info(
            f"Нет исполнителей для {saved.booking_code} в радиусе {search_radius_km:g} км",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": booking_id},
        )
        await self._event_bus.publish(NoDriversAvailable(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            vehicle_class=saved.vehicle_class.value,
            search_radius_km=search_radius_km,
            refund_amount=self._refund_amount(saved),
            payment_method=saved.payment_method.value,
        ))
        return saved

    # =========================================================================
    # ПЕРЕХОДЫ ИСПОЛНИТЕЛЯ
    # =========================================================================

    async def accept(self, booking_id: str, worker_id: str) -> BookingRecord:
        """
        Исполнитель принимает предложение. Побеждает первый, кому удалось
        зарезервировать себя в реестре доступности.

        Raises:
            AlreadyAssigned: бронирование уже назначено или резерв не удался
            BookingUnavailable: бронирование больше не ищет исполнителя
            IllegalTransition: исполнителю это бронирование не предлагалось
        """
        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            if booking.status != BookingStatus.SEARCHING:
                await self._reject_late_accept(booking, worker_id)

            if worker_id not in booking.notified_workers:
                raise await self._illegal(
                    booking,
                    f"Исполнителю {worker_id} не предлагалось бронирование {booking.booking_code}",
                    worker_id=worker_id,
                )

            if not await self._availability.reserve(worker_id):
                await log_warning(
                    f"Исполнитель {worker_id} не смог зарезервироваться для {booking.booking_code}",
                    extra={"booking_id": booking_id},
                )
                raise AlreadyAssigned(
                    f"Исполнитель {worker_id} недоступен для назначения",
                    booking_id=booking_id,
                    worker_id=worker_id,
                )

            others = [w for w in booking.notified_workers if w != worker_id]
            updated = await self._transition(
                booking, BookingStatus.CONFIRMED, note=f"Accepted by driver {worker_id}", actor=worker_id
            )
            updated.assigned_worker = worker_id
            saved = await self._persist(updated, reserved_worker=worker_id)

        await log_info(
            f"Бронирование {saved.booking_code} принято исполнителем {worker_id}",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": booking_id},
        )
        events: list[DomainEvent] = [BookingAccepted(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            worker_id=worker_id,
        )]
        events.extend(self._offer_cancellations(saved, others, "taken"))
        await self._event_bus.publish_many(events)
        return saved

    async def start(self, booking_id: str, worker_id: str) -> BookingRecord:
        """
        confirmed -> in_progress.

        Raises:
            IllegalTransition: статус не confirmed или исполнитель не назначен на бронирование
        """
        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            await self._require_assigned(booking, worker_id)
            updated = await self._transition(booking, BookingStatus.IN_PROGRESS, note="Trip started", actor=worker_id)
            saved = await self._persist(updated)

        await self._event_bus.publish(TripStarted(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            worker_id=worker_id,
        ))
        return saved

    async def complete(self, booking_id: str, worker_id: str) -> BookingRecord:
        """
        in_progress -> completed. Исполнитель освобождается,
        начисление заработка выполняет подписчик TripCompleted.

        Raises:
            IllegalTransition: статус не in_progress или исполнитель не назначен на бронирование
        """
        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            await self._require_assigned(booking, worker_id)
            updated = await self._transition(booking, BookingStatus.COMPLETED, note="Trip completed", actor=worker_id)
            saved = await self._persist(updated)
            await self._availability.release(worker_id)

        await log_info(
            f"Поездка {saved.booking_code} завершена, стоимость {saved.fare.total} {saved.fare.currency}",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": booking_id},
        )
        await self._event_bus.publish(TripCompleted(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            worker_id=worker_id,
            fare_total=saved.fare.total,
            currency=saved.fare.currency,
            payment_method=saved.payment_method.value,
        ))
        return saved

    # =========================================================================
    # ОТМЕНА, ИСТЕЧЕНИЕ, АРХИВ
    # =========================================================================

    async def cancel(self, booking_id: str, actor: CancelActor | str, reason: str) -> BookingRecord:
        """
        Отмена из pending, searching или confirmed.
        Зарезервированный исполнитель освобождается, возврат средств
        выполняет подписчик BookingCancelled.

        Raises:
            IllegalTransition: бронирование нельзя отменить в текущем статусе
        """
        actor = CancelActor(actor)

        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            if booking.status not in CANCELLABLE_STATUSES:
                raise await self._illegal(
                    booking, f"Бронирование {booking.booking_code} нельзя отменить в статусе {booking.status.value}"
                )

            notified = list(booking.notified_workers)
            assigned = booking.assigned_worker
            refund = self._refund_amount(booking)

            updated = await self._transition(booking, BookingStatus.CANCELLED, note=reason, actor=actor.value)
            updated.assigned_worker = None
            updated.cancellation = CancellationRecord(
                actor=actor,
                reason=reason,
                cancelled_at=updated.updated_at,
                refund_amount=refund,
            )
            saved = await self._persist(updated)
            if assigned is not None:
                await self._availability.release(assigned)

        await log_info(
            f"Бронирование {saved.booking_code} отменено ({actor.value}): {reason}",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": booking_id},
        )
        events: list[DomainEvent] = [BookingCancelled(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            worker_id=assigned,
            actor=actor.value,
            reason=reason,
            refund_amount=refund,
            payment_method=saved.payment_method.value,
        )]
        events.extend(self._offer_cancellations(saved, notified, "cancelled"))
        await self._event_bus.publish_many(events)
        return saved

    async def expire(self, booking_id: str) -> BookingRecord:
        """
        searching -> expired. Вызывается внешним таймером.

        Raises:
            IllegalTransition: бронирование не в статусе searching
        """
        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            notified = list(booking.notified_workers)
            updated = await self._transition(
                booking, BookingStatus.EXPIRED, note="Offer window elapsed", actor=CancelActor.SYSTEM.value
            )
            saved = await self._persist(updated)

        await log_info(f"Бронирование {saved.booking_code} истекло", type_msg=TypeMsg.INFO)
        events: list[DomainEvent] = [BookingExpired(
            booking_id=saved.id,
            booking_code=saved.booking_code,
            requester_id=saved.requester_id,
            refund_amount=self._refund_amount(saved),
            payment_method=saved.payment_method.value,
        )]
        events.extend(self._offer_cancellations(saved, notified, "expired"))
        await self._event_bus.publish_many(events)
        return saved

    async def archive(self, booking_id: str) -> BookingRecord:
        """
        Мягкое архивирование завершённого бронирования.
        Запись не удаляется: на неё ссылаются транзакции кошельков.

        Raises:
            IllegalTransition: бронирование ещё не в терминальном статусе
        """
        async with self._locks.hold(booking_id):
            booking = await self.get(booking_id)
            if not booking.is_terminal:
                raise await self._illegal(
                    booking, f"Нельзя архивировать бронирование {booking.booking_code} в статусе {booking.status.value}"
                )
            if booking.archived:
                return booking
            booking.archived = True
            return await self._persist(booking)

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _transition(
        self,
        booking: BookingRecord,
        new_status: BookingStatus,
        note: str | None = None,
        actor: str | None = None,
    ) -> BookingRecord:
        try:
            return transition(booking, new_status, self._clock(), note=note, actor=actor)
        except IllegalTransition as e:
            await log_error(f"Запрещённый переход: {e.message}", extra=e.details)
            raise

    async def _illegal(self, booking: BookingRecord, message: str, **details: Any) -> IllegalTransition:
        await log_error(message, extra={"booking_id": booking.id, "status": booking.status.value, **details})
        return IllegalTransition(message, booking_id=booking.id, status=booking.status.value, **details)

    async def _require_assigned(self, booking: BookingRecord, worker_id: str) -> None:
        if booking.assigned_worker != worker_id:
            raise await self._illegal(
                booking,
                f"Исполнитель {worker_id} не назначен на бронирование {booking.booking_code}",
                worker_id=worker_id,
            )

    async def _reject_late_accept(self, booking: BookingRecord, worker_id: str) -> None:
        """Ответ на предложение пришёл, когда бронирование уже не в searching."""
        if booking.assigned_worker is not None:
            await log_info(
                f"Исполнитель {worker_id} опоздал: {booking.booking_code} уже назначено",
                type_msg=TypeMsg.INFO,
            )
            raise AlreadyAssigned(
                f"Бронирование {booking.booking_code} уже назначено",
                booking_id=booking.id,
                worker_id=worker_id,
            )
        if booking.status == BookingStatus.PENDING:
            raise await self._illegal(
                booking, f"Бронирование {booking.booking_code} ещё не предлагалось исполнителям", worker_id=worker_id
            )
        await log_info(
            f"Бронирование {booking.booking_code} недоступно ({booking.status.value}) для {worker_id}",
            type_msg=TypeMsg.INFO,
        )
        raise BookingUnavailable(
            f"Бронирование {booking.booking_code} больше не доступно",
            booking_id=booking.id,
            status=booking.status.value,
        )

    async def _persist(self, booking: BookingRecord, reserved_worker: str | None = None) -> BookingRecord:
        """Сохраняет запись; при сбое снимает резерв, взятый в этом же вызове."""
        try:
            return await self._repository.save(booking)
        except PersistenceFailure as e:
            if reserved_worker is not None:
                await self._availability.release(reserved_worker)
            await log_error(f"Не удалось сохранить бронирование {booking.id}: {e.message}", extra=e.details)
            raise

    @staticmethod
    def _refund_amount(booking: BookingRecord) -> Decimal:
        return booking.fare.total if booking.is_wallet_paid else ZERO

    @staticmethod
    def _offer_cancellations(booking: BookingRecord, worker_ids: list[str], reason: str) -> list[OfferCancelled]:
        return [
            OfferCancelled(
                booking_id=booking.id,
                booking_code=booking.booking_code,
                worker_id=worker_id,
                reason=reason,
            )
            for worker_id in worker_ids
        ]
