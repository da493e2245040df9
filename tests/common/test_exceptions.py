# tests/common/test_exceptions.py
"""
Тесты для таксономии ошибок.
"""

from __future__ import annotations

from src.common.constants import OrderStatus
from src.common.exceptions import (
    AssignmentConflict,
    BrokerUnavailable,
    DispatchError,
    InvalidTransition,
    NoCandidateFound,
    StorageUnavailable,
)


def test_invalid_transition_message() -> None:
    error = InvalidTransition("o-1", OrderStatus.PLACED, OrderStatus.DELIVERED)

    assert error.current == "placed"
    assert error.target == "delivered"
    assert "placed -> delivered" in str(error)


def test_broker_unavailable_is_transient() -> None:
    """Недоступность брокера обрабатывается как временная ошибка хранилища."""
    assert issubclass(BrokerUnavailable, StorageUnavailable)


def test_common_base() -> None:
    for error in (AssignmentConflict("o-1", "c-1"), NoCandidateFound("o-1", 500.0)):
        assert isinstance(error, DispatchError)
