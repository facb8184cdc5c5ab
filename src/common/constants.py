# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class BookingStatus(str, Enum):
    """Статусы бронирования."""
    PENDING = "pending"
    SEARCHING = "searching"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    NO_DRIVERS_AVAILABLE = "no_drivers_available"


# Терминальные статусы — из них переходов нет
TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.EXPIRED,
    BookingStatus.NO_DRIVERS_AVAILABLE,
})

# Статусы, при которых у бронирования есть назначенный исполнитель
ASSIGNED_STATUSES: frozenset[BookingStatus] = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
})


class VehicleClass(str, Enum):
    """Классы транспорта."""
    TWO_WHEELER = "2-wheeler"
    THREE_WHEELER = "3-wheeler"
    MINI_TRUCK = "mini-truck"
    TEMPO = "tempo"
    LARGE_TRUCK = "large-truck"


class CancelActor(str, Enum):
    """Кто отменил бронирование."""
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"
    SYSTEM = "system"


class PaymentMethod(str, Enum):
    """Способы оплаты."""
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"
    WALLET = "wallet"
    COD = "cod"


class AccountType(str, Enum):
    """Типы кошельков."""
    CUSTOMER = "customer"
    WORKER = "worker"


class TransactionType(str, Enum):
    """Направление транзакции."""
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(str, Enum):
    """Категории транзакций кошелька."""
    TRIP_EARNING = "trip_earning"
    TRIP_PAYMENT = "trip_payment"
    BONUS = "bonus"
    INCENTIVE = "incentive"
    REFERRAL = "referral"
    CASHBACK = "cashback"
    WALLET_TOPUP = "wallet_topup"
    WITHDRAWAL = "withdrawal"
    REFUND = "refund"
    PROMO_CREDIT = "promo_credit"
    PENALTY = "penalty"
    ADJUSTMENT = "adjustment"


# Категории, которые учитываются в total_earnings
EARNING_CATEGORIES: frozenset[TransactionCategory] = frozenset({
    TransactionCategory.TRIP_EARNING,
    TransactionCategory.BONUS,
    TransactionCategory.INCENTIVE,
})


class WithdrawalStatus(str, Enum):
    """Статусы заявки на вывод средств."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Заявки в этих статусах держат сумму в pending_balance
OPEN_WITHDRAWAL_STATUSES: frozenset[WithdrawalStatus] = frozenset({
    WithdrawalStatus.PENDING,
    WithdrawalStatus.PROCESSING,
})
