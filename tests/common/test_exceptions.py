# tests/common/test_exceptions.py
"""
Тесты иерархии ошибок ядра.
"""

import pytest

from src.common.exceptions import (
    AlreadyAssigned,
    BookingUnavailable,
    DispatchError,
    IllegalTransition,
    InsufficientBalance,
    InvalidCoordinate,
    PersistenceFailure,
)


class TestDispatchError:
    """Тесты для DispatchError и наследников."""

    def test_details_and_dict(self) -> None:
        error = AlreadyAssigned("Уже назначено", booking_id="b-1", worker_id="w-2")

        assert error.code == "already_assigned"
        assert error.details == {"booking_id": "b-1", "worker_id": "w-2"}
        assert error.to_dict() == {
            "code": "already_assigned",
            "message": "Уже назначено",
            "retryable": False,
            "details": {"booking_id": "b-1", "worker_id": "w-2"},
        }

    def test_default_message_is_code(self) -> None:
        assert str(BookingUnavailable()) == "booking_unavailable"

    def test_only_persistence_failure_is_retryable(self) -> None:
        assert PersistenceFailure.retryable is True
        for cls in (InvalidCoordinate, IllegalTransition, InsufficientBalance):
            assert cls.retryable is False

    def test_all_inherit_base(self) -> None:
        with pytest.raises(DispatchError):
            raise IllegalTransition("bad")
