# src/core/bookings/repository.py
"""
Хранилища бронирований.

Оба хранилища используют оптимистическую блокировку по version:
save() записывает документ, только если версия в хранилище совпадает
с версией прочитанной записи, и возвращает запись с увеличенной версией.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.common.constants import BookingStatus, TypeMsg
from src.common.exceptions import PersistenceFailure
from src.common.logger import log_error, log_info
from src.core.bookings.models import BookingRecord
from src.infra.database import STORAGE_ERRORS, DatabaseManager


class BookingRepository(ABC):
    """Контракт хранилища бронирований."""

    @abstractmethod
    async def get(self, booking_id: str) -> BookingRecord | None:
        ...

    @abstractmethod
    async def create(self, booking: BookingRecord) -> BookingRecord:
        ...

    @abstractmethod
    async def save(self, booking: BookingRecord) -> BookingRecord:
        ...

    @abstractmethod
    async def find_by_status(self, status: BookingStatus) -> list[BookingRecord]:
        ...


class InMemoryBookingRepository(BookingRepository):
    """Хранилище в памяти процесса. Хранит и отдаёт копии записей."""

    def __init__(self) -> None:
        self._records: dict[str, BookingRecord] = {}

    async def get(self, booking_id: str) -> BookingRecord | None:
        record = self._records.get(booking_id)
        return record.model_copy(deep=True) if record else None

    async def create(self, booking: BookingRecord) -> BookingRecord:
        if booking.id in self._records:
            raise PersistenceFailure(f"Бронирование {booking.id} уже существует", booking_id=booking.id)
        stored = booking.model_copy(deep=True, update={"version": 1})
        self._records[booking.id] = stored
        return stored.model_copy(deep=True)

    async def save(self, booking: BookingRecord) -> BookingRecord:
        current = self._records.get(booking.id)
        if current is None or current.version != booking.version:
            raise PersistenceFailure(
                f"Конфликт версий бронирования {booking.id}",
                booking_id=booking.id,
                expected=booking.version,
                actual=current.version if current else None,
            )
        stored = booking.model_copy(deep=True, update={"version": booking.version + 1})
        self._records[booking.id] = stored
        return stored.model_copy(deep=True)

    async def find_by_status(self, status: BookingStatus) -> list[BookingRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._records.values()
            if record.status == status
        ]

    def __len__(self) -> int:
        return len(self._records)


class PostgresBookingRepository(BookingRepository):
    """
    Хранилище в PostgreSQL: документ бронирования в JSONB
    и индексируемые колонки для поиска.
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get(self, booking_id: str) -> BookingRecord | None:
        try:
            row = await self._db.fetchrow(
                "SELECT document, version FROM bookings WHERE id = $1",
                booking_id,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка чтения бронирования {booking_id}: {e}")
            raise PersistenceFailure(f"Не удалось прочитать бронирование {booking_id}") from e

        if row is None:
            return None
        return self._row_to_booking(row)

    async def create(self, booking: BookingRecord) -> BookingRecord:
        stored = booking.model_copy(deep=True, update={"version": 1})
        try:
            await self._db.execute(
                """
                INSERT INTO bookings (id, booking_code, requester_id, assigned_worker,
                                      status, archived, document, version, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8, $9, $10)
                """,
                stored.id,
                stored.booking_code,
                stored.requester_id,
                stored.assigned_worker,
                stored.status.value,
                stored.archived,
                stored.model_dump_json(),
                stored.version,
                stored.created_at,
                stored.updated_at,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка создания бронирования {booking.id}: {e}")
            raise PersistenceFailure(f"Не удалось сохранить бронирование {booking.id}") from e

        await log_info(f"Бронирование {stored.booking_code} сохранено", type_msg=TypeMsg.DEBUG)
        return stored

    async def save(self, booking: BookingRecord) -> BookingRecord:
        stored = booking.model_copy(deep=True, update={"version": booking.version + 1})
        try:
            new_version = await self._db.fetchval(
                """
                UPDATE bookings
                SET assigned_worker = $3,
                    status = $4,
                    archived = $5,
                    document = $6::jsonb,
                    version = version + 1,
                    updated_at = $7
                WHERE id = $1 AND version = $2
                RETURNING version
                """,
                booking.id,
                booking.version,
                stored.assigned_worker,
                stored.status.value,
                stored.archived,
                stored.model_dump_json(),
                stored.updated_at,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка сохранения бронирования {booking.id}: {e}")
            raise PersistenceFailure(f"Не удалось сохранить бронирование {booking.id}") from e

        if new_version is None:
            raise PersistenceFailure(
                f"Конфликт версий бронирования {booking.id}",
                booking_id=booking.id,
                expected=booking.version,
            )
        return stored

    async def find_by_status(self, status: BookingStatus) -> list[BookingRecord]:
        try:
            rows = await self._db.fetch(
                "SELECT document, version FROM bookings WHERE status = $1 AND NOT archived",
                status.value,
            )
        except STORAGE_ERRORS as e:
            await log_error(f"Ошибка поиска бронирований в статусе {status.value}: {e}")
            raise PersistenceFailure("Не удалось прочитать бронирования") from e
        return [self._row_to_booking(row) for row in rows]

    @staticmethod
    def _row_to_booking(row) -> BookingRecord:
        booking = BookingRecord.model_validate_json(row["document"])
        booking.version = row["version"]
        return booking
