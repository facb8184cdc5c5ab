# src/common/exceptions.py
"""
Типизированные ошибки ядра диспетчеризации.

Ошибки валидации и нарушения предусловий возвращаются вызывающему синхронно
и никогда не повторяются автоматически. PersistenceFailure — единственная
ошибка, которую вызывающий может повторить.
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Базовая ошибка ядра."""

    code: str = "dispatch_error"
    retryable: bool = False

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Представление ошибки для внешнего API-слоя."""
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


# =============================================================================
# ВАЛИДАЦИЯ ВХОДНЫХ ДАННЫХ
# =============================================================================

class InvalidCoordinate(DispatchError):
    """Координата вне допустимого диапазона."""
    code = "invalid_coordinate"


class InvalidVehicleClass(DispatchError):
    """Неизвестный класс транспорта."""
    code = "invalid_vehicle_class"


class InvalidAmount(DispatchError):
    """Сумма операции должна быть положительной."""
    code = "invalid_amount"


# =============================================================================
# БРОНИРОВАНИЯ
# =============================================================================

class BookingNotFound(DispatchError):
    """Бронирование не найдено."""
    code = "booking_not_found"


class NoDriversAvailable(DispatchError):
    """Рядом нет подходящих исполнителей (терминальный исход, не сбой)."""
    code = "no_drivers_available"


class AlreadyAssigned(DispatchError):
    """Гонка проиграна: бронирование уже назначено другому исполнителю."""
    code = "already_assigned"


class BookingUnavailable(DispatchError):
    """Бронирование больше не принимает ответы на предложения."""
    code = "booking_unavailable"


class IllegalTransition(DispatchError):
    """Переход запрещён конечным автоматом бронирования."""
    code = "illegal_transition"


class WorkerNotFound(DispatchError):
    """Исполнитель не зарегистрирован в справочнике."""
    code = "worker_not_found"


# =============================================================================
# КОШЕЛЬКИ
# =============================================================================

class InsufficientBalance(DispatchError):
    """Недостаточно средств на балансе."""
    code = "insufficient_balance"


class BelowMinimum(DispatchError):
    """Сумма вывода меньше минимальной."""
    code = "below_minimum"


class AboveMaximum(DispatchError):
    """Сумма вывода больше максимальной."""
    code = "above_maximum"


class WithdrawalInProgress(DispatchError):
    """У кошелька уже есть незавершённая заявка на вывод."""
    code = "withdrawal_in_progress"


class WithdrawalNotFound(DispatchError):
    """Заявка на вывод не найдена."""
    code = "withdrawal_not_found"


class IllegalWithdrawalTransition(DispatchError):
    """Недопустимый переход статуса заявки на вывод."""
    code = "illegal_withdrawal_transition"


# =============================================================================
# ИНФРАСТРУКТУРА
# =============================================================================

class PersistenceFailure(DispatchError):
    """Не удалось сохранить изменение после прохождения проверок."""
    code = "persistence_failure"
    retryable = True
