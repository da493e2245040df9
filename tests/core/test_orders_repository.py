# tests/core/test_orders_repository.py
"""
Тесты для репозитория заказов (условные обновления).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.common.constants import OrderStatus, PaymentStatus
from src.common.exceptions import (
    AssignmentConflict,
    DataIntegrityViolation,
    Forbidden,
    InvalidTransition,
    StorageUnavailable,
)
from src.core.orders.models import OrderCreate
from src.core.orders.repository import OrderRepository
from src.shared.models.location import GeoPoint


@pytest.fixture
def repo(mock_db) -> OrderRepository:
    return OrderRepository(mock_db, payment_window_minutes=15)


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_sets_payment_window(self, repo, mock_db, make_order_row) -> None:
        """expires_at = created_at + окно оплаты."""
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        mock_db.fetchrow.return_value = make_order_row(expires_at=now + timedelta(minutes=15))

        order = await repo.create(
            OrderCreate(id="order-1", user_id="user-1", restaurant_id="rest-1",
                        delivery_location=GeoPoint.from_lat_lon(52.52, 13.405)),
            now=now,
        )

        args = mock_db.fetchrow.call_args.args
        assert args[4] == "placed"
        assert args[5] == "pending"
        assert args[8] == now + timedelta(minutes=15)
        assert order.status == OrderStatus.PLACED
        assert order.delivery_location.latitude == pytest.approx(52.52)


class TestSettlePayment:

    @pytest.mark.asyncio
    async def test_first_settlement_changes_order(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.return_value = make_order_row(
            status="paid", payment_status="paid", expires_at=None, payment_reference="pay-1",
        )

        result = await repo.settle_payment("order-1", "pay-1")

        assert result.changed is True
        assert result.order.payment_status == PaymentStatus.PAID
        assert result.order.expires_at is None
        query = mock_db.fetchrow.call_args.args[0]
        assert "expires_at = NULL" in query
        assert "payment_status = $4" in query

    @pytest.mark.asyncio
    async def test_redelivery_is_noop(self, repo, mock_db, make_order_row) -> None:
        """Повторная доставка: UPDATE не затронул строк, заказ уже оплачен."""
        mock_db.fetchrow.side_effect = [
            None,
            make_order_row(status="paid", payment_status="paid", expires_at=None),
        ]

        result = await repo.settle_payment("order-1", "pay-1")

        assert result.changed is False

    @pytest.mark.asyncio
    async def test_missing_order(self, repo, mock_db) -> None:
        mock_db.fetchrow.side_effect = [None, None]

        with pytest.raises(DataIntegrityViolation):
            await repo.settle_payment("missing", "pay-1")

    @pytest.mark.asyncio
    async def test_expired_order(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [
            None,
            make_order_row(status="expired", payment_status="failed", expires_at=None),
        ]

        with pytest.raises(InvalidTransition):
            await repo.settle_payment("order-1", "pay-1")

    @pytest.mark.asyncio
    async def test_storage_unavailable_propagates(self, repo, mock_db) -> None:
        mock_db.fetchrow.side_effect = StorageUnavailable("down")

        with pytest.raises(StorageUnavailable):
            await repo.settle_payment("order-1", "pay-1")


class TestAssignRider:

    @pytest.mark.asyncio
    async def test_assigned(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.return_value = make_order_row(status="rider_assigned", rider_id="c-1", payment_status="paid",
                                                       expires_at=None)

        result = await repo.assign_rider("order-1", "c-1")

        assert result.order.rider_id == "c-1"
        assert result.changed is True
        query = mock_db.fetchrow.call_args.args[0]
        assert "rider_id IS NULL" in query

    @pytest.mark.asyncio
    async def test_conflict(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [
            None,
            make_order_row(status="rider_assigned", rider_id="c-2", payment_status="paid", expires_at=None),
        ]

        with pytest.raises(AssignmentConflict) as exc_info:
            await repo.assign_rider("order-1", "c-1")
        assert exc_info.value.rider_id == "c-2"

    @pytest.mark.asyncio
    async def test_same_courier_is_idempotent(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [
            None,
            make_order_row(status="rider_assigned", rider_id="c-1", payment_status="paid", expires_at=None),
        ]

        result = await repo.assign_rider("order-1", "c-1")

        assert result.order.rider_id == "c-1"
        assert result.changed is False

    @pytest.mark.asyncio
    async def test_not_ready(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [None, make_order_row(status="preparing", payment_status="paid",
                                                             expires_at=None)]

        with pytest.raises(InvalidTransition):
            await repo.assign_rider("order-1", "c-1")


class TestUpdateByRider:

    @pytest.mark.asyncio
    async def test_other_courier_forbidden(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [None, make_order_row(status="rider_assigned", rider_id="c-2",
                                                             payment_status="paid", expires_at=None)]

        with pytest.raises(Forbidden):
            await repo.update_by_rider("order-1", "c-1", OrderStatus.PICKED_UP)

    @pytest.mark.asyncio
    async def test_delivered_before_pickup_rejected(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [None, make_order_row(status="rider_assigned", rider_id="c-1",
                                                             payment_status="paid", expires_at=None)]

        with pytest.raises(InvalidTransition):
            await repo.update_by_rider("order-1", "c-1", OrderStatus.DELIVERED)

    @pytest.mark.asyncio
    async def test_only_delivery_statuses(self, repo) -> None:
        with pytest.raises(InvalidTransition):
            await repo.update_by_rider("order-1", "c-1", OrderStatus.CANCELLED)

    @pytest.mark.asyncio
    async def test_repeated_delivered_rejected(self, repo, mock_db, make_order_row) -> None:
        """Повторная отметка delivered не проходит как успешная."""
        mock_db.fetchrow.side_effect = [None, make_order_row(status="delivered", rider_id="c-1",
                                                             payment_status="paid", expires_at=None)]

        with pytest.raises(InvalidTransition) as exc_info:
            await repo.update_by_rider("order-1", "c-1", OrderStatus.DELIVERED)
        assert exc_info.value.current == str(OrderStatus.DELIVERED)


class TestTransition:

    @pytest.mark.asyncio
    async def test_delivered_from_placed_rejected(self, repo, mock_db, make_order_row) -> None:
        """Заказ не меняется при недопустимом переходе."""
        mock_db.fetchrow.side_effect = [None, make_order_row(status="placed")]

        with pytest.raises(InvalidTransition):
            await repo.transition("order-1", OrderStatus.DELIVERED)

        sources = mock_db.fetchrow.call_args_list[0].args[3]
        assert sources == ["picked_up"]

    @pytest.mark.asyncio
    async def test_duplicate_transition_rejected(self, repo, mock_db, make_order_row) -> None:
        """Заказ уже в целевом статусе: повторная доставка отклоняется."""
        mock_db.fetchrow.side_effect = [None, make_order_row(status="preparing", payment_status="paid",
                                                             expires_at=None)]

        with pytest.raises(InvalidTransition):
            await repo.transition("order-1", OrderStatus.PREPARING)

    @pytest.mark.asyncio
    async def test_assignment_not_allowed_through_transition(self, repo, mock_db) -> None:
        with pytest.raises(InvalidTransition):
            await repo.transition("order-1", OrderStatus.RIDER_ASSIGNED)
        mock_db.fetchrow.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_clears_rider(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.return_value = make_order_row(status="cancelled", rider_id=None, expires_at=None)

        order = await repo.cancel("order-1")

        assert order.status == OrderStatus.CANCELLED
        assert "rider_id = NULL" in mock_db.fetchrow.call_args.args[0]

    @pytest.mark.asyncio
    async def test_cancel_twice_rejected(self, repo, mock_db, make_order_row) -> None:
        mock_db.fetchrow.side_effect = [None, make_order_row(status="cancelled", expires_at=None)]

        with pytest.raises(InvalidTransition):
            await repo.cancel("order-1")


class TestGetActiveByRider:

    @pytest.mark.asyncio
    async def test_none(self, repo, mock_db) -> None:
        assert await repo.get_active_by_rider("c-1") is None
        assert mock_db.fetchrow.call_args.args[2] == ["rider_assigned", "picked_up"]
