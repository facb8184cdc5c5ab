# src/common/money.py
"""
Денежные суммы: Decimal с двумя знаками после запятой.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from src.common.exceptions import InvalidAmount

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """
    Приводит значение к Decimal с копейками.
    float переводится через str, чтобы не тянуть двоичную погрешность.

    Raises:
        InvalidAmount: значение не является числом
    """
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise InvalidAmount(f"Некорректная сумма: {value!r}", value=str(value)) from e
    if not amount.is_finite():
        raise InvalidAmount(f"Некорректная сумма: {value!r}", value=str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def positive_money(value: Decimal | int | float | str) -> Decimal:
    """
    Raises:
        InvalidAmount: сумма не положительна
    """
    amount = to_money(value)
    if amount <= ZERO:
        raise InvalidAmount(f"Сумма должна быть положительной: {amount}", amount=str(amount))
    return amount


def percent_of(amount: Decimal, percent: Decimal | int | float) -> Decimal:
    """Доля суммы в процентах, округлённая до копеек."""
    return to_money(amount * Decimal(str(percent)) / Decimal(100))
