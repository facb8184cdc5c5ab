# src/core/bookings/fares.py
"""
Расчёт стоимости перевозки.
"""

from __future__ import annotations

import math
from decimal import Decimal

from src.common.constants import VehicleClass
from src.common.exceptions import InvalidVehicleClass
from src.common.money import percent_of, to_money
from src.config.loader import FareSettings, VehicleTariff
from src.core.bookings.models import FareBreakdown, Requirements
from src.core.geo.distance import RouteEstimate


def parse_vehicle_class(value: str | VehicleClass) -> VehicleClass:
    """
    Raises:
        InvalidVehicleClass: неизвестный класс транспорта
    """
    try:
        return VehicleClass(value)
    except ValueError:
        raise InvalidVehicleClass(f"Неизвестный класс транспорта: {value!r}", vehicle_class=str(value)) from None


def _ceil(value: Decimal) -> Decimal:
    return Decimal(math.ceil(value))


class FareCalculator:
    """
    Калькулятор тарифов.

    Формула:
    - base + ceil(км × per_km) + ceil(мин × per_minute) + надбавка за спрос
    - не меньше минимального тарифа класса
    - плюс доплаты за требования (грузчик, хрупкий, тяжёлый груз)
    """

    def __init__(self, fare_settings: FareSettings | None = None) -> None:
        if fare_settings is None:
            from src.config import settings
            fare_settings = settings.fares
        self._settings = fare_settings

    @property
    def currency(self) -> str:
        return self._settings.CURRENCY

    @property
    def commission_percent(self) -> Decimal:
        return Decimal(self._settings.PLATFORM_COMMISSION_PERCENT)

    def tariff(self, vehicle_class: VehicleClass | str) -> VehicleTariff:
        vehicle_class = parse_vehicle_class(vehicle_class)
        tariff = self._settings.TARIFFS.get(vehicle_class.value)
        if tariff is None:
            raise InvalidVehicleClass(
                f"Для класса {vehicle_class.value} не задан тариф",
                vehicle_class=vehicle_class.value,
            )
        return tariff

    def surcharges(self, requirements: Requirements) -> Decimal:
        total = Decimal("0")
        if requirements.helper:
            total += self._settings.HELPER_SURCHARGE
        if requirements.fragile:
            total += self._settings.FRAGILE_SURCHARGE
        if requirements.heavy:
            total += self._settings.HEAVY_SURCHARGE
        return total

    def calculate(
        self,
        vehicle_class: VehicleClass | str,
        route: RouteEstimate,
        requirements: Requirements | None = None,
        surge_multiplier: Decimal | None = None,
    ) -> FareBreakdown:
        """
        Считает стоимость поездки.

        Raises:
            InvalidVehicleClass: неизвестный класс транспорта
        """
        tariff = self.tariff(vehicle_class)
        requirements = requirements or Requirements()
        if surge_multiplier is None:
            surge_multiplier = self._settings.SURGE_MULTIPLIER

        base = tariff.base
        distance = _ceil(Decimal(str(route.distance_km)) * tariff.per_km)
        time = _ceil(Decimal(str(route.duration_minutes)) * tariff.per_minute)
        surge = Decimal("0")
        if surge_multiplier > 1:
            surge = _ceil((base + distance + time) * (Decimal(surge_multiplier) - 1))

        subtotal = max(base + distance + time + surge, tariff.minimum)
        additional = self.surcharges(requirements)

        return FareBreakdown(
            base=to_money(base),
            distance=to_money(distance),
            time=to_money(time),
            surge=to_money(surge),
            additional=to_money(additional),
            total=to_money(subtotal + additional),
            currency=self.currency,
        )

    def with_demand_surge(
        self,
        vehicle_class: VehicleClass | str,
        fare: FareBreakdown,
        percent: Decimal | int,
    ) -> FareBreakdown:
        """
        Добавляет наценку за спрос (percent от базовой стоимости)
        и пересчитывает итог с учётом минимального тарифа.
        """
        tariff = self.tariff(vehicle_class)
        surge = fare.surge + percent_of(fare.base, percent)
        subtotal = max(fare.base + fare.distance + fare.time + surge, tariff.minimum)
        return fare.model_copy(update={
            "surge": to_money(surge),
            "total": to_money(subtotal + fare.additional),
        })

    def worker_share(self, total: Decimal) -> Decimal:
        """Доля исполнителя: стоимость за вычетом комиссии платформы."""
        return percent_of(total, Decimal(100) - self.commission_percent)

    def platform_commission(self, total: Decimal) -> Decimal:
        return to_money(total) - self.worker_share(total)
