# tests/core/test_booking_repository.py
"""
Тесты хранилищ бронирований.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from test_booking_models import make_booking
from src.common.constants import BookingStatus
from src.common.exceptions import PersistenceFailure
from src.core.bookings.repository import InMemoryBookingRepository, PostgresBookingRepository


class TestInMemoryBookingRepository:
    """Тесты хранилища в памяти."""

    @pytest.fixture
    def repository(self) -> InMemoryBookingRepository:
        return InMemoryBookingRepository()

    @pytest.mark.asyncio
    async def test_create_and_get(self, repository: InMemoryBookingRepository) -> None:
        booking = make_booking()

        created = await repository.create(booking)
        loaded = await repository.get(booking.id)

        assert created.version == 1
        assert loaded == created
        assert loaded is not created

    @pytest.mark.asyncio
    async def test_duplicate_create(self, repository: InMemoryBookingRepository) -> None:
        booking = make_booking()
        await repository.create(booking)

        with pytest.raises(PersistenceFailure):
            await repository.create(booking)

    @pytest.mark.asyncio
    async def test_stale_version_rejected(self, repository: InMemoryBookingRepository) -> None:
        created = await repository.create(make_booking())
        first = await repository.get(created.id)
        second = await repository.get(created.id)

        first.archived = True
        assert (await repository.save(first)).version == 2

        with pytest.raises(PersistenceFailure, match="Конфликт версий"):
            await repository.save(second)

    @pytest.mark.asyncio
    async def test_stored_copy_isolated(self, repository: InMemoryBookingRepository) -> None:
        created = await repository.create(make_booking())
        created.notified_workers.append("w-1")

        assert (await repository.get(created.id)).notified_workers == []

    @pytest.mark.asyncio
    async def test_find_by_status(self, repository: InMemoryBookingRepository) -> None:
        await repository.create(make_booking())
        await repository.create(make_booking(status=BookingStatus.SEARCHING))

        found = await repository.find_by_status(BookingStatus.SEARCHING)

        assert len(found) == 1
        assert len(repository) == 2


class TestPostgresBookingRepository:
    """Тесты PostgreSQL хранилища с мок-менеджером БД."""

    @pytest.fixture
    def repository(self, mock_db: AsyncMock) -> PostgresBookingRepository:
        return PostgresBookingRepository(mock_db)

    @pytest.mark.asyncio
    async def test_get_missing(self, repository, mock_db: AsyncMock) -> None:
        assert await repository.get("b-404") is None

    @pytest.mark.asyncio
    async def test_get_restores_document(self, repository, mock_db: AsyncMock) -> None:
        booking = make_booking()
        mock_db.fetchrow.return_value = {"document": booking.model_dump_json(), "version": 7}

        loaded = await repository.get(booking.id)

        assert loaded.id == booking.id
        assert loaded.version == 7

    @pytest.mark.asyncio
    async def test_create_inserts_columns(self, repository, mock_db: AsyncMock) -> None:
        booking = make_booking()

        created = await repository.create(booking)

        args = mock_db.execute.call_args.args
        assert "INSERT INTO bookings" in args[0]
        assert args[1] == booking.id
        assert args[5] == "pending"
        assert created.version == 1

    @pytest.mark.asyncio
    async def test_save_version_conflict(self, repository, mock_db: AsyncMock) -> None:
        mock_db.fetchval.return_value = None

        with pytest.raises(PersistenceFailure, match="Конфликт версий"):
            await repository.save(make_booking(version=3))

    @pytest.mark.asyncio
    async def test_save_increments_version(self, repository, mock_db: AsyncMock) -> None:
        mock_db.fetchval.return_value = 4

        saved = await repository.save(make_booking(version=3))

        assert saved.version == 4
        assert mock_db.fetchval.call_args.args[2] == 3

    @pytest.mark.asyncio
    async def test_storage_error_wrapped(self, repository, mock_db: AsyncMock) -> None:
        mock_db.fetch.side_effect = ConnectionRefusedError("down")

        with pytest.raises(PersistenceFailure) as exc_info:
            await repository.find_by_status(BookingStatus.SEARCHING)

        assert exc_info.value.retryable is True
