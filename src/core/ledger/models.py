# src/core/ledger/models.py
"""
Модели кошельков: счёт, транзакция, заявка на вывод.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from src.common.constants import (
    EARNING_CATEGORIES,
    OPEN_WITHDRAWAL_STATUSES,
    AccountType,
    TransactionCategory,
    TransactionType,
    WithdrawalStatus,
)
from src.common.exceptions import InsufficientBalance
from src.common.money import ZERO


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# Допустимые переходы заявки на вывод
WITHDRAWAL_TRANSITIONS: dict[WithdrawalStatus, frozenset[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: frozenset({
        WithdrawalStatus.PROCESSING,
        WithdrawalStatus.COMPLETED,
        WithdrawalStatus.FAILED,
        WithdrawalStatus.CANCELLED,
    }),
    WithdrawalStatus.PROCESSING: frozenset({
        WithdrawalStatus.COMPLETED,
        WithdrawalStatus.FAILED,
        WithdrawalStatus.CANCELLED,
    }),
    WithdrawalStatus.COMPLETED: frozenset(),
    WithdrawalStatus.FAILED: frozenset(),
    WithdrawalStatus.CANCELLED: frozenset(),
}


class Transaction(BaseModel):
    """Запись журнала операций счёта."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    account_id: str
    type: TransactionType
    category: TransactionCategory
    amount: Decimal = Field(..., gt=0)
    balance_after: Decimal = Field(..., ge=0)
    reference: str | None = None
    description: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == TransactionType.CREDIT else -self.amount


class PayoutDetails(BaseModel):
    """Реквизиты выплаты: UPI или банковский счёт (владелец, номер, IFSC, банк)."""
    account_holder_name: str | None = None
    account_number: str | None = None
    ifsc_code: str | None = None
    bank_name: str | None = None
    upi_id: str | None = None

    @model_validator(mode="after")
    def _check_destination(self) -> "PayoutDetails":
        if self.upi_id:
            return self
        missing = [
            name
            for name in ("account_holder_name", "account_number", "ifsc_code", "bank_name")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"Нужен upi_id или банковские реквизиты, не хватает: {', '.join(missing)}")
        return self


class WithdrawalRequest(BaseModel):
    """Заявка на вывод средств."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    account_id: str
    amount: Decimal = Field(..., gt=0)
    status: WithdrawalStatus = WithdrawalStatus.PENDING
    payout_details: PayoutDetails
    requested_at: datetime = Field(default_factory=utc_now)
    processed_at: datetime | None = None
    payout_reference: str | None = None
    failure_reason: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_WITHDRAWAL_STATUSES


def replay(transactions: list[Transaction], opening_balance: Decimal = ZERO) -> tuple[Decimal, list[str]]:
    """
    Проигрывает журнал от начального баланса.

    Returns:
        (итоговый баланс, список нарушений)
    """
    balance = opening_balance
    violations = []
    for tx in transactions:
        balance += tx.signed_amount
        if balance != tx.balance_after:
            violations.append(
                f"{tx.id}: balance_after {tx.balance_after} != {balance}"
            )
            balance = tx.balance_after
        if balance < ZERO:
            violations.append(f"{tx.id}: отрицательный баланс {balance}")
    return balance, violations


class WalletAccount(BaseModel):
    """
    Счёт заказчика или исполнителя.

    transactions хранит только последние записи (окно);
    opening_balance равен балансу перед первой записью окна,
    так что opening_balance + сумма окна всегда равна balance.
    Полный журнал лежит в хранилище.
    """
    account_id: str
    account_type: AccountType = AccountType.CUSTOMER
    balance: Decimal = Field(ZERO, ge=0)
    pending_balance: Decimal = Field(ZERO, ge=0)
    total_earnings: Decimal = ZERO
    total_withdrawals: Decimal = ZERO
    currency: str = "INR"

    transactions: list[Transaction] = Field(default_factory=list)
    opening_balance: Decimal = ZERO
    pruned_count: int = 0
    withdrawal_requests: list[WithdrawalRequest] = Field(default_factory=list)

    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def open_withdrawal(self) -> WithdrawalRequest | None:
        for request in self.withdrawal_requests:
            if request.is_open:
                return request
        return None

    def find_withdrawal(self, withdrawal_id: str) -> WithdrawalRequest | None:
        for request in self.withdrawal_requests:
            if request.id == withdrawal_id:
                return request
        return None

    def record(
        self,
        tx_type: TransactionType,
        category: TransactionCategory,
        amount: Decimal,
        reference: str | None = None,
        description: str | None = None,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Меняет баланс и добавляет запись в журнал одним шагом.

        Raises:
            InsufficientBalance: списание больше баланса
        """
        now = now or utc_now()
        if tx_type == TransactionType.DEBIT:
            if amount > self.balance:
                raise InsufficientBalance(
                    f"Недостаточно средств: баланс {self.balance}, требуется {amount}",
                    account_id=self.account_id,
                    balance=str(self.balance),
                    amount=str(amount),
                )
            self.balance -= amount
        else:
            self.balance += amount
            if category in EARNING_CATEGORIES:
                self.total_earnings += amount

        tx = Transaction(
            account_id=self.account_id,
            type=tx_type,
            category=category,
            amount=amount,
            balance_after=self.balance,
            reference=reference,
            description=description,
            timestamp=now,
        )
        self.transactions.append(tx)
        self.updated_at = now
        return tx

    def prune(self, window: int) -> list[Transaction]:
        """Отрезает самые старые записи сверх окна и сдвигает opening_balance."""
        excess = len(self.transactions) - window
        if excess <= 0:
            return []
        pruned = self.transactions[:excess]
        self.transactions = self.transactions[excess:]
        self.opening_balance = pruned[-1].balance_after
        self.pruned_count += len(pruned)
        return pruned

    def replay_window(self) -> tuple[Decimal, list[str]]:
        return replay(self.transactions, self.opening_balance)


class BalanceSnapshot(BaseModel):
    """Баланс счёта для ответа клиенту."""
    account_id: str
    balance: Decimal = ZERO
    pending_balance: Decimal = ZERO
    total_earnings: Decimal = ZERO
    total_withdrawals: Decimal = ZERO
    currency: str = "INR"
    open_withdrawal_id: str | None = None


class HistoryPage(BaseModel):
    """Страница истории операций, новые первыми."""
    account_id: str
    items: list[Transaction]
    page: int
    page_size: int
    total: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total


class ReplayReport(BaseModel):
    """Результат сверки журнала с балансом."""
    account_id: str
    balance: Decimal
    window_balance: Decimal
    audit_balance: Decimal
    violations: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return (
            not self.violations
            and self.window_balance == self.balance
            and self.audit_balance == self.balance
        )
