# src/core/matching/service.py
"""
Подбор исполнителей для бронирования.
Ищет ближайших свободных исполнителей нужного класса в гео-индексе
с постепенным увеличением радиуса и рассылает им предложения.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.common.constants import BookingStatus, TypeMsg
from src.common.exceptions import IllegalTransition
from src.common.logger import log_error, log_info
from src.config.loader import SearchSettings
from src.core.availability.directory import WorkerDirectory
from src.core.availability.service import AvailabilityRegistry
from src.core.bookings.fares import FareCalculator
from src.core.bookings.models import BookingRecord, FareBreakdown
from src.core.bookings.service import BookingService
from src.core.geo.service import GeoIndex
from src.core.geo.utils import haversine_m
from src.infra.event_bus import EventBus
from src.shared.events import OfferIssued


@dataclass
class WorkerCandidate:
    """Кандидат исполнителя для бронирования."""
    worker_id: str
    distance_m: float


class Matcher:
    """
    Сервис подбора исполнителей.

    Кандидат должен быть в гео-индексе, свободен в реестре доступности,
    пройти KYC и иметь точно совпадающий класс транспорта.
    """

    def __init__(
        self,
        bookings: BookingService,
        geo_index: GeoIndex,
        availability: AvailabilityRegistry,
        directory: WorkerDirectory,
        event_bus: EventBus,
        fare_calculator: FareCalculator | None = None,
        search_settings: SearchSettings | None = None,
    ) -> None:
        if search_settings is None:
            from src.config import settings
            search_settings = settings.search

        self._bookings = bookings
        self._geo = geo_index
        self._availability = availability
        self._directory = directory
        self._event_bus = event_bus
        self._fares = fare_calculator or bookings.fares
        self._search = search_settings

    async def find_candidates(
        self,
        booking: BookingRecord,
        radius_km: float,
    ) -> list[WorkerCandidate]:
        """
        Свободные подходящие исполнители в радиусе от точки подачи.

        Returns:
            Кандидаты, ближайшие первыми, при равенстве по worker_id
        """
        hits = await self._geo.query(
            booking.pickup.lat,
            booking.pickup.lng,
            radius_km,
            limit=self._search.CANDIDATE_POOL_SIZE,
        )

        candidates = []
        for worker_id, distance_m in hits:
            if not await self._availability.is_available(worker_id):
                continue
            if not await self._directory.is_eligible(worker_id, booking.vehicle_class):
                continue
            candidates.append(WorkerCandidate(worker_id=worker_id, distance_m=distance_m))

        return candidates

    async def find_candidates_incrementally(
        self,
        booking: BookingRecord,
    ) -> tuple[list[WorkerCandidate], float]:
        """
        Расширяет радиус шагами, пока не наберётся достаточно кандидатов.

        Returns:
            (кандидаты, радиус последнего поиска в км)
        """
        radius = self._search.SEARCH_RADIUS_KM
        max_radius = max(self._search.SEARCH_RADIUS_MAX_KM, radius)
        step = self._search.SEARCH_RADIUS_STEP_KM
        wanted = self._search.MAX_DRIVERS_TO_NOTIFY

        candidates: list[WorkerCandidate] = []
        while True:
            candidates = await self.find_candidates(booking, radius)
            if len(candidates) >= wanted or radius >= max_radius or step <= 0:
                break
            radius = min(radius + step, max_radius)

        await log_info(
            f"Найдено {len(candidates)} исполнителей для {booking.booking_code} в радиусе {radius:g} км",
            type_msg=TypeMsg.DEBUG,
        )
        return candidates[:wanted], radius

    async def nearby_demand(self, booking: BookingRecord) -> int:
        """Число других бронирований в поиске рядом с точкой подачи."""
        radius_m = self._search.SURGE_DEMAND_RADIUS_KM * 1000.0
        searching = await self._bookings.find_by_status(BookingStatus.SEARCHING)
        return sum(
            1
            for other in searching
            if other.id != booking.id
            and haversine_m(booking.pickup.lat, booking.pickup.lng, other.pickup.lat, other.pickup.lng) <= radius_m
        )

    async def surged_fare(self, booking: BookingRecord) -> FareBreakdown | None:
        """
        Стоимость с наценкой за спрос, если бронирований в поиске
        рядом больше порога; иначе None.
        """
        demand = await self.nearby_demand(booking)
        if demand <= self._search.SURGE_DEMAND_THRESHOLD:
            return None

        fare = self._fares.with_demand_surge(
            booking.vehicle_class, booking.fare, self._search.SURGE_DEMAND_PERCENT
        )
        await log_info(
            f"Высокий спрос у {booking.booking_code}: {demand} бронирований в поиске, "
            f"стоимость {booking.fare.total} -> {fare.total}",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": booking.id},
        )
        return fare

    async def match(self, booking_id: str) -> bool:
        """
        Рассылает предложения по бронированию в статусе pending.

        Returns:
            True, если предложения отправлены; False, если исполнителей нет
            и бронирование переведено в no_drivers_available

        Raises:
            IllegalTransition: бронирование не в статусе pending
        """
        booking = await self._bookings.get(booking_id)
        if booking.status != BookingStatus.PENDING:
            message = f"Подбор для {booking.booking_code} невозможен в статусе {booking.status.value}"
            await log_error(message, extra={"booking_id": booking_id})
            raise IllegalTransition(message, booking_id=booking_id, status=booking.status.value)

        candidates, radius = await self.find_candidates_incrementally(booking)
        if not candidates:
            await self._bookings.mark_no_drivers(booking_id, radius)
            return False

        fare = await self.surged_fare(booking)
        booking = await self._bookings.begin_search(
            booking_id, [candidate.worker_id for candidate in candidates], fare=fare
        )

        incentive = self._fares.worker_share(booking.fare.total)
        offers = [
            OfferIssued(
                booking_id=booking.id,
                booking_code=booking.booking_code,
                worker_id=candidate.worker_id,
                rank=rank,
                distance_m=round(candidate.distance_m, 1),
                incentive=incentive,
                fare_total=booking.fare.total,
                currency=booking.fare.currency,
                vehicle_class=booking.vehicle_class.value,
                pickup_lat=booking.pickup.lat,
                pickup_lng=booking.pickup.lng,
                pickup_address=booking.pickup.address,
                drop_address=booking.drop.address,
                trip_distance_km=booking.distance_km,
            )
            for rank, candidate in enumerate(candidates, start=1)
        ]
        await self._event_bus.publish_many(offers)

        await log_info(
            f"Предложения по {booking.booking_code} отправлены: {len(offers)}",
            type_msg=TypeMsg.INFO,
            extra={"booking_id": booking_id},
        )
        return True
