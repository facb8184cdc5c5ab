# src/shared/events/wallet_events.py
"""
События кошельков.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from src.shared.events.base import DomainEvent


class WalletCredited(DomainEvent):
    """Событие: кошелёк пополнен."""

    event_type: Literal["wallet.credited"] = "wallet.credited"

    account_id: str
    transaction_id: str
    category: str
    amount: Decimal
    balance_after: Decimal
    reference: str | None = None


class WalletDebited(DomainEvent):
    """Событие: с кошелька списаны средства."""

    event_type: Literal["wallet.debited"] = "wallet.debited"

    account_id: str
    transaction_id: str
    category: str
    amount: Decimal
    balance_after: Decimal
    reference: str | None = None


class WithdrawalRequested(DomainEvent):
    """Событие: создана заявка на вывод, сумма переведена в pending_balance."""

    event_type: Literal["wallet.withdrawal_requested"] = "wallet.withdrawal_requested"

    account_id: str
    withdrawal_id: str
    amount: Decimal


class WithdrawalSettled(DomainEvent):
    """Событие: заявка на вывод перешла в новый статус."""

    event_type: Literal["wallet.withdrawal_settled"] = "wallet.withdrawal_settled"

    account_id: str
    withdrawal_id: str
    amount: Decimal
    status: str
    payout_reference: str | None = None
    failure_reason: str | None = None
