# src/core/ledger/repository.py
"""
Хранилища кошельков.

Документ счёта хранится с окном последних транзакций, каждая
транзакция дополнительно дописывается в полный журнал (аудит).
save() использует оптимистическую блокировку по version.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.common.constants import TransactionCategory, TypeMsg
from src.common.exceptions import PersistenceFailure
from src.common.logger import log_error, log_info
from src.core.ledger.models import Transaction, WalletAccount
from src.infra.database import STORAGE_ERRORS, DatabaseManager


class WalletRepository(ABC):
    """Контракт хранилища кошельков."""

    @abstractmethod
    async def get(self, account_id: str) -> WalletAccount | None:
        ...

    @abstractmethod
    async def save(self, account: WalletAccount, appended: list[Transaction]) -> WalletAccount:
        """Сохраняет счёт и дописывает новые транзакции в журнал."""

    @abstractmethod
    async def history(self, account_id: str, offset: int, limit: int) -> tuple[list[Transaction], int]:
        """Транзакции новые первыми и общее их число."""

    @abstractmethod
    async def audit_log(self, account_id: str) -> list[Transaction]:
        """Полный журнал, старые первыми."""

    @abstractmethod
    async def find_transaction(
        self,
        account_id: str,
        category: TransactionCategory,
        reference: str,
    ) -> Transaction | None:
        ...


class InMemoryWalletRepository(WalletRepository):
    """Хранилище в памяти процесса."""

    def __init__(self) -> None:
        self._accounts: dict[str, WalletAccount] = {}
        self._journal: dict[str, list[Transaction]] = {}

    async def get(self, account_id: str) -> WalletAccount | None:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def save(self, account: WalletAccount, appended: list[Transaction]) -> WalletAccount:
        current = self._accounts.get(account.account_id)
        current_version = current.version if current else 0
        if current_version != account.version:
            raise PersistenceFailure(
                f"Конфликт версий счёта {account.account_id}",
                account_id=account.account_id,
                expected=account.version,
                actual=current_version,
            )
        stored = account.model_copy(deep=True, update={"version": account.version + 1})
        self._accounts[account.account_id] = stored
        self._journal.setdefault(account.account_id, []).extend(
            tx.model_copy() for tx in appended
        )
        return stored.model_copy(deep=True)

    async def history(self, account_id: str, offset: int, limit: int) -> tuple[list[Transaction], int]:
        journal = self._journal.get(account_id, [])
        newest_first = list(reversed(journal))
        return newest_first[offset:offset + limit], len(journal)

    async def audit_log(self, account_id: str) -> list[Transaction]:
        return list(self._journal.get(account_id, []))

    async def find_transaction(
        self,
        account_id: str,
        category: TransactionCategory,
        reference: str,
    ) -> Transaction | None:
        for tx in self._journal.get(account_id, []):
            if tx.category == category and tx.reference == reference:
                return tx
        return None


class PostgresWalletRepository(WalletRepository):
    """
    Хранилище в PostgreSQL.
    wallets хранит документ счёта в JSONB, wallet_transactions полный журнал.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get(self, account_id: str) -> WalletAccount | None:
        try:
            row = await self._db.fetchrow(
                "SELECT document, version FROM wallets WHERE account_id = $1",
                account_id,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка чтения счёта {account_id}: {e}")
            raise PersistenceFailure(f"Не удалось прочитать счёт {account_id}") from e

        if row is None:
            return None
        account = WalletAccount.model_validate_json(row["document"])
        account.version = row["version"]
        return account

    async def save(self, account: WalletAccount, appended: list[Transaction]) -> WalletAccount:
        stored = account.model_copy(deep=True, update={"version": account.version + 1})
        try:
            async with self._db.transaction() as conn:
                if account.version == 0:
                    written = await conn.fetchval(
                        """
                        INSERT INTO wallets (account_id, account_type, balance, pending_balance,
                                             document, version, created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5::jsonb, 1, $6, $7)
                        ON CONFLICT (account_id) DO NOTHING
                        RETURNING version
                        """,
                        stored.account_id,
                        stored.account_type.value,
                        stored.balance,
                        stored.pending_balance,
                        stored.model_dump_json(),
                        stored.created_at,
                        stored.updated_at,
                    )
                else:
                    written = await conn.fetchval(
                        """
                        UPDATE wallets
                        SET balance = $3,
                            pending_balance = $4,
                            document = $5::jsonb,
                            version = version + 1,
                            updated_at = $6
                        WHERE account_id = $1 AND version = $2
                        RETURNING version
                        """,
                        stored.account_id,
                        account.version,
                        stored.balance,
                        stored.pending_balance,
                        stored.model_dump_json(),
                        stored.updated_at,
                    )

                if written is None:
                    raise PersistenceFailure(
                        f"Конфликт версий счёта {account.account_id}",
                        account_id=account.account_id,
                        expected=account.version,
                    )

                if appended:
                    await conn.executemany(
                        """
                        INSERT INTO wallet_transactions (id, account_id, type, category, amount,
                                                         balance_after, reference, description, created_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                        """,
                        [
                            (
                                tx.id,
                                tx.account_id,
                                tx.type.value,
                                tx.category.value,
                                tx.amount,
                                tx.balance_after,
                                tx.reference,
                                tx.description,
                                tx.timestamp,
                            )
                            for tx in appended
                        ],
                    )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка сохранения счёта {account.account_id}: {e}")
            raise PersistenceFailure(f"Не удалось сохранить счёт {account.account_id}") from e

        await log_info(
            f"Счёт {account.account_id} сохранён, новых транзакций: {len(appended)}",
            type_msg=TypeMsg.DEBUG,
        )
        return stored

    async def history(self, account_id: str, offset: int, limit: int) -> tuple[list[Transaction], int]:
        try:
            total = await self._db.fetchval(
                "SELECT COUNT(*) FROM wallet_transactions WHERE account_id = $1",
                account_id,
            )
            rows = await self._db.fetch(
                """
                SELECT * FROM wallet_transactions
                WHERE account_id = $1
                ORDER BY seq DESC
                OFFSET $2 LIMIT $3
                """,
                account_id,
                offset,
                limit,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка чтения истории счёта {account_id}: {e}")
            raise PersistenceFailure(f"Не удалось прочитать историю счёта {account_id}") from e
        return [self._row_to_transaction(row) for row in rows], total or 0

    async def audit_log(self, account_id: str) -> list[Transaction]:
        try:
            rows = await self._db.fetch(
                "SELECT * FROM wallet_transactions WHERE account_id = $1 ORDER BY seq ASC",
                account_id,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка чтения журнала счёта {account_id}: {e}")
            raise PersistenceFailure(f"Не удалось прочитать журнал счёта {account_id}") from e
        return [self._row_to_transaction(row) for row in rows]

    async def find_transaction(
        self,
        account_id: str,
        category: TransactionCategory,
        reference: str,
    ) -> Transaction | None:
        try:
            row = await self._db.fetchrow(
                """
                SELECT * FROM wallet_transactions
                WHERE account_id = $1 AND category = $2 AND reference = $3
                LIMIT 1
                """,
                account_id,
                category.value,
                reference,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка поиска транзакции {reference}: {e}")
            raise PersistenceFailure(f"Не удалось прочитать журнал счёта {account_id}") from e
        return self._row_to_transaction(row) if row else None

    @staticmethod
    def _row_to_transaction(row) -> Transaction:
        return Transaction(
            id=row["id"],
            account_id=row["account_id"],
            type=row["type"],
            category=row["category"],
            amount=row["amount"],
            balance_after=row["balance_after"],
            reference=row["reference"],
            description=row["description"],
            timestamp=row["created_at"],
        )
