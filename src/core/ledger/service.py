# src/core/ledger/service.py
"""
Сервис кошельков.

Реализует:
- Начисления и списания с журналом операций
- Заявки на вывод и колбэки выплат
- Историю операций и сверку журнала с балансом

Операции над одним счётом сериализованы блокировкой по account_id,
разные счета не блокируют друг друга.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from src.common.constants import (
    AccountType,
    TransactionCategory,
    TransactionType,
    TypeMsg,
    WithdrawalStatus,
)
from src.common.exceptions import (
    AboveMaximum,
    BelowMinimum,
    IllegalWithdrawalTransition,
    InsufficientBalance,
    WithdrawalInProgress,
    WithdrawalNotFound,
)
from src.common.locks import KeyedLock
from src.common.logger import log_error, log_info, log_warning
from src.common.money import ZERO, positive_money
from src.config.loader import LedgerSettings
from src.core.ledger.models import (
    WITHDRAWAL_TRANSITIONS,
    BalanceSnapshot,
    HistoryPage,
    PayoutDetails,
    ReplayReport,
    Transaction,
    WalletAccount,
    WithdrawalRequest,
    replay,
    utc_now,
)
from src.core.ledger.repository import WalletRepository
from src.infra.event_bus import EventBus
from src.shared.events import (
    DomainEvent,
    WalletCredited,
    WalletDebited,
    WithdrawalRequested,
    WithdrawalSettled,
)


class LedgerService:
    """Сервис кошельков заказчиков и исполнителей."""

    def __init__(
        self,
        repository: WalletRepository,
        event_bus: EventBus,
        ledger_settings: LedgerSettings | None = None,
        currency: str | None = None,
        clock=utc_now,
    ) -> None:
        if ledger_settings is None or currency is None:
            from src.config import settings
            ledger_settings = ledger_settings or settings.ledger
            currency = currency or settings.fares.CURRENCY

        self._repository = repository
        self._event_bus = event_bus
        self._settings = ledger_settings
        self._currency = currency
        self._clock = clock
        self._locks = KeyedLock()

    # =========================================================================
    # НАЧИСЛЕНИЯ И СПИСАНИЯ
    # =========================================================================

    async def credit(
        self,
        account_id: str,
        amount: Decimal | int | float | str,
        category: TransactionCategory,
        reference: str | None = None,
        description: str | None = None,
        account_type: AccountType = AccountType.CUSTOMER,
    ) -> Transaction:
        """
        Начисляет сумму на счёт. Счёт создаётся при первой операции.

        Raises:
            InvalidAmount: сумма не положительна
        """
        return await self._apply(
            account_id, TransactionType.CREDIT, amount, category, reference, description, account_type
        )

    async def credit_once(
        self,
        account_id: str,
        amount: Decimal | int | float | str,
        category: TransactionCategory,
        reference: str,
        description: str | None = None,
        account_type: AccountType = AccountType.CUSTOMER,
    ) -> Transaction | None:
        """
        Начисление, не повторяющееся для пары (category, reference).

        Returns:
            Новая транзакция или None, если такая уже была
        """
        return await self._apply(
            account_id,
            TransactionType.CREDIT,
            amount,
            category,
            reference,
            description,
            account_type,
            unique=True,
        )

    async def debit(
        self,
        account_id: str,
        amount: Decimal | int | float | str,
        category: TransactionCategory,
        reference: str | None = None,
        description: str | None = None,
        account_type: AccountType = AccountType.CUSTOMER,
    ) -> Transaction:
        """
        Списывает сумму со счёта.

        Raises:
            InvalidAmount: сумма не положительна
            InsufficientBalance: сумма больше баланса
        """
        return await self._apply(
            account_id, TransactionType.DEBIT, amount, category, reference, description, account_type
        )

    async def _apply(
        self,
        account_id: str,
        tx_type: TransactionType,
        amount: Decimal | int | float | str,
        category: TransactionCategory,
        reference: str | None,
        description: str | None,
        account_type: AccountType,
        unique: bool = False,
    ) -> Transaction | None:
        amount = positive_money(amount)
        category = TransactionCategory(category)

        async with self._locks.hold(account_id):
            if unique and reference is not None:
                existing = await self._repository.find_transaction(account_id, category, reference)
                if existing is not None:
                    await log_info(
                        f"Операция {category.value}/{reference} по счёту {account_id} уже проведена",
                        type_msg=TypeMsg.DEBUG,
                    )
                    return None

            account = await self._load_or_new(account_id, account_type)
            try:
                tx = account.record(tx_type, category, amount, reference, description, self._clock())
            except InsufficientBalance:
                await log_warning(
                    f"Недостаточно средств на счёте {account_id}: баланс {account.balance}, списание {amount}",
                    extra={"account_id": account_id},
                )
                raise
            saved = await self._save(account, [tx])

        event_cls = WalletCredited if tx_type == TransactionType.CREDIT else WalletDebited
        await self._event_bus.publish(event_cls(
            account_id=account_id,
            transaction_id=tx.id,
            category=category.value,
            amount=amount,
            balance_after=tx.balance_after,
            reference=reference,
        ))
        await log_info(
            f"Счёт {account_id}: {tx_type.value} {amount} ({category.value}), баланс {saved.balance}",
            type_msg=TypeMsg.DEBUG,
        )
        return tx

    # =========================================================================
    # ВЫВОД СРЕДСТВ
    # =========================================================================

    async def request_withdrawal(
        self,
        account_id: str,
        amount: Decimal | int | float | str,
        payout_details: PayoutDetails | dict[str, Any],
    ) -> WithdrawalRequest:
        """
        Создаёт заявку на вывод и удерживает сумму в pending_balance.

        Raises:
            InvalidAmount: сумма не положительна
            InsufficientBalance: сумма больше баланса
            BelowMinimum: сумма меньше минимальной
            AboveMaximum: сумма больше максимальной
            WithdrawalInProgress: уже есть незавершённая заявка
        """
        amount = positive_money(amount)
        if isinstance(payout_details, dict):
            payout_details = PayoutDetails.model_validate(payout_details)

        async with self._locks.hold(account_id):
            account = await self._repository.get(account_id)
            balance = account.balance if account else ZERO

            if account is None or amount > balance:
                await log_warning(
                    f"Вывод {amount} со счёта {account_id} отклонён: баланс {balance}",
                    extra={"account_id": account_id},
                )
                raise InsufficientBalance(
                    f"Недостаточно средств: баланс {balance}, запрошено {amount}",
                    account_id=account_id,
                    balance=str(balance),
                    amount=str(amount),
                )
            if amount < self._settings.WITHDRAWAL_MIN_AMOUNT:
                raise BelowMinimum(
                    f"Минимальная сумма вывода {self._settings.WITHDRAWAL_MIN_AMOUNT}",
                    account_id=account_id,
                    amount=str(amount),
                )
            if amount > self._settings.WITHDRAWAL_MAX_AMOUNT:
                raise AboveMaximum(
                    f"Максимальная сумма вывода {self._settings.WITHDRAWAL_MAX_AMOUNT}",
                    account_id=account_id,
                    amount=str(amount),
                )
            open_request = account.open_withdrawal()
            if open_request is not None:
                raise WithdrawalInProgress(
                    f"У счёта {account_id} уже есть заявка {open_request.id} в статусе {open_request.status.value}",
                    account_id=account_id,
                    withdrawal_id=open_request.id,
                )

            now = self._clock()
            request = WithdrawalRequest(
                account_id=account_id,
                amount=amount,
                payout_details=payout_details,
                requested_at=now,
            )
            hold = account.record(
                TransactionType.DEBIT,
                TransactionCategory.WITHDRAWAL,
                amount,
                reference=request.id,
                description="Withdrawal hold",
                now=now,
            )
            account.pending_balance += amount
            account.withdrawal_requests.append(request)
            await self._save(account, [hold])

        await log_info(
            f"Заявка на вывод {request.id}: {amount} со счёта {account_id}",
            type_msg=TypeMsg.INFO,
        )
        await self._event_bus.publish_many([
            WalletDebited(
                account_id=account_id,
                transaction_id=hold.id,
                category=hold.category.value,
                amount=amount,
                balance_after=hold.balance_after,
                reference=request.id,
            ),
            WithdrawalRequested(account_id=account_id, withdrawal_id=request.id, amount=amount),
        ])
        return request

    async def mark_withdrawal_processing(self, account_id: str, withdrawal_id: str) -> WithdrawalRequest:
        """Выплата передана платёжному провайдеру."""
        request, _ = await self._settle(account_id, withdrawal_id, WithdrawalStatus.PROCESSING)
        return request

    async def complete_withdrawal(
        self,
        account_id: str,
        withdrawal_id: str,
        payout_reference: str | None = None,
    ) -> WithdrawalRequest:
        """Выплата прошла: удержание снимается, деньги ушли со счёта."""
        request, events = await self._settle(
            account_id, withdrawal_id, WithdrawalStatus.COMPLETED, payout_reference=payout_reference
        )
        await self._event_bus.publish_many(events)
        return request

    async def fail_withdrawal(self, account_id: str, withdrawal_id: str, reason: str) -> WithdrawalRequest:
        """Выплата не прошла: удержание возвращается на баланс."""
        request, events = await self._settle(
            account_id, withdrawal_id, WithdrawalStatus.FAILED, reason=reason
        )
        await self._event_bus.publish_many(events)
        return request

    async def cancel_withdrawal(
        self,
        account_id: str,
        withdrawal_id: str,
        reason: str | None = None,
    ) -> WithdrawalRequest:
        """Заявка отменена: удержание возвращается на баланс."""
        request, events = await self._settle(
            account_id, withdrawal_id, WithdrawalStatus.CANCELLED, reason=reason
        )
        await self._event_bus.publish_many(events)
        return request

    async def _settle(
        self,
        account_id: str,
        withdrawal_id: str,
        new_status: WithdrawalStatus,
        payout_reference: str | None = None,
        reason: str | None = None,
    ) -> tuple[WithdrawalRequest, list[DomainEvent]]:
        """
        Переводит заявку в новый статус.

        Raises:
            WithdrawalNotFound: заявки нет
            IllegalWithdrawalTransition: переход не разрешён
        """
        async with self._locks.hold(account_id):
            account = await self._repository.get(account_id)
            request = account.find_withdrawal(withdrawal_id) if account else None
            if account is None or request is None:
                raise WithdrawalNotFound(
                    f"Заявка {withdrawal_id} не найдена",
                    account_id=account_id,
                    withdrawal_id=withdrawal_id,
                )
            if new_status not in WITHDRAWAL_TRANSITIONS[request.status]:
                message = f"Заявку {withdrawal_id} нельзя перевести из {request.status.value} в {new_status.value}"
                await log_error(message, extra={"account_id": account_id})
                raise IllegalWithdrawalTransition(
                    message,
                    withdrawal_id=withdrawal_id,
                    status=request.status.value,
                    target=new_status.value,
                )

            now = self._clock()
            request.status = new_status
            appended: list[Transaction] = []
            events: list[DomainEvent] = []

            if new_status == WithdrawalStatus.COMPLETED:
                account.pending_balance -= request.amount
                account.total_withdrawals += request.amount
                request.processed_at = now
                request.payout_reference = payout_reference
            elif new_status in (WithdrawalStatus.FAILED, WithdrawalStatus.CANCELLED):
                account.pending_balance -= request.amount
                refund = account.record(
                    TransactionType.CREDIT,
                    TransactionCategory.REFUND,
                    request.amount,
                    reference=request.id,
                    description=f"Withdrawal {new_status.value}",
                    now=now,
                )
                appended.append(refund)
                request.processed_at = now
                request.failure_reason = reason
                events.append(WalletCredited(
                    account_id=account_id,
                    transaction_id=refund.id,
                    category=refund.category.value,
                    amount=refund.amount,
                    balance_after=refund.balance_after,
                    reference=request.id,
                ))

            account.updated_at = now
            await self._save(account, appended)

        if request.processed_at is not None:
            events.append(WithdrawalSettled(
                account_id=account_id,
                withdrawal_id=withdrawal_id,
                amount=request.amount,
                status=new_status.value,
                payout_reference=request.payout_reference,
                failure_reason=request.failure_reason,
            ))
        await log_info(
            f"Заявка {withdrawal_id} счёта {account_id}: {new_status.value}",
            type_msg=TypeMsg.INFO,
        )
        return request, events

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_account(self, account_id: str) -> WalletAccount | None:
        return await self._repository.get(account_id)

    async def get_balance(self, account_id: str) -> BalanceSnapshot:
        """Баланс счёта; для несуществующего счёта нули."""
        account = await self._repository.get(account_id)
        if account is None:
            return BalanceSnapshot(account_id=account_id, currency=self._currency)

        open_request = account.open_withdrawal()
        return BalanceSnapshot(
            account_id=account_id,
            balance=account.balance,
            pending_balance=account.pending_balance,
            total_earnings=account.total_earnings,
            total_withdrawals=account.total_withdrawals,
            currency=account.currency,
            open_withdrawal_id=open_request.id if open_request else None,
        )

    async def get_history(
        self,
        account_id: str,
        page: int = 1,
        page_size: int | None = None,
    ) -> HistoryPage:
        """История операций, новые первыми, с постраничным выводом."""
        page_size = page_size or self._settings.HISTORY_PAGE_SIZE
        if page < 1 or page_size < 1:
            raise ValueError("page и page_size должны быть положительными")

        items, total = await self._repository.history(account_id, (page - 1) * page_size, page_size)
        return HistoryPage(
            account_id=account_id,
            items=items,
            page=page,
            page_size=page_size,
            total=total,
        )

    async def has_transaction(self, account_id: str, category: TransactionCategory, reference: str) -> bool:
        return await self._repository.find_transaction(account_id, category, reference) is not None

    async def verify_replay(self, account_id: str) -> ReplayReport:
        """
        Сверяет баланс с журналом: окно проигрывается от opening_balance,
        полный журнал от нуля.
        """
        async with self._locks.hold(account_id):
            account = await self._repository.get(account_id)
            audit = await self._repository.audit_log(account_id)

        if account is None:
            return ReplayReport(
                account_id=account_id,
                balance=ZERO,
                window_balance=ZERO,
                audit_balance=ZERO,
            )

        window_balance, window_violations = account.replay_window()
        audit_balance, audit_violations = replay(audit)
        report = ReplayReport(
            account_id=account_id,
            balance=account.balance,
            window_balance=window_balance,
            audit_balance=audit_balance,
            violations=window_violations + audit_violations,
        )
        if not report.ok:
            await log_error(
                f"Журнал счёта {account_id} не сходится с балансом {account.balance}",
                extra={"window": str(window_balance), "audit": str(audit_balance)},
            )
        return report

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _load_or_new(self, account_id: str, account_type: AccountType) -> WalletAccount:
        account = await self._repository.get(account_id)
        if account is not None:
            return account
        now = self._clock()
        return WalletAccount(
            account_id=account_id,
            account_type=account_type,
            currency=self._currency,
            created_at=now,
            updated_at=now,
        )

    async def _save(self, account: WalletAccount, appended: list[Transaction]) -> WalletAccount:
        # Каждая запись уже в журнале репозитория: обрезается только окно документа
        pruned = account.prune(self._settings.TRANSACTION_WINDOW)
        if pruned:
            await log_info(
                f"Счёт {account.account_id}: {len(pruned)} старых записей вынесены из окна, "
                f"начальный баланс окна {account.opening_balance}",
                type_msg=TypeMsg.DEBUG,
                extra={"account_id": account.account_id},
            )
        return await self._repository.save(account, appended)
