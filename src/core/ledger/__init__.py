"""Кошельки: счета, журнал операций, вывод средств."""

from src.core.ledger.handlers import LedgerEventHandlers
from src.core.ledger.models import (
    BalanceSnapshot,
    HistoryPage,
    PayoutDetails,
    ReplayReport,
    Transaction,
    WalletAccount,
    WithdrawalRequest,
)
from src.core.ledger.repository import (
    InMemoryWalletRepository,
    PostgresWalletRepository,
    WalletRepository,
)
from src.core.ledger.service import LedgerService

__all__ = [
    "BalanceSnapshot",
    "HistoryPage",
    "InMemoryWalletRepository",
    "LedgerEventHandlers",
    "LedgerService",
    "PayoutDetails",
    "PostgresWalletRepository",
    "ReplayReport",
    "Transaction",
    "WalletAccount",
    "WalletRepository",
    "WithdrawalRequest",
]
