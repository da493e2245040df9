# tests/core/test_assignment_service.py
"""
Тесты для протокола назначения курьера.
"""

from __future__ import annotations

import asyncio

import pytest

from src.common.constants import OrderStatus, PaymentStatus, RealtimeEvents
from src.common.exceptions import DataIntegrityViolation, Forbidden, InvalidTransition
from src.core.assignment.service import ALREADY_ASSIGNED, AssignmentService


@pytest.fixture
def ready_order(order_store, make_order):
    return order_store.put(make_order(
        status=OrderStatus.READY_FOR_PICKUP,
        payment_status=PaymentStatus.PAID,
        expires_at=None,
    ))


@pytest.fixture
def service(order_store, courier_store, mock_gateway) -> AssignmentService:
    return AssignmentService(order_store, courier_store, mock_gateway)


class TestAccept:

    @pytest.mark.asyncio
    async def test_single_accept(self, service, order_store, ready_order, mock_gateway) -> None:
        result = await service.accept(ready_order.id, "c-1")

        assert result.success is True
        assert result.rider_id == "c-1"
        stored = order_store.orders[ready_order.id]
        assert stored.rider_id == "c-1"
        assert stored.status == OrderStatus.RIDER_ASSIGNED

        targets = mock_gateway.emit_many.call_args.args[0]
        assert {room for room, _, _ in targets} == {"user:user-1", "restaurant:rest-1", "order:order-1"}
        assert all(event == RealtimeEvents.RIDER_ASSIGNED for _, event, _ in targets)

    @pytest.mark.asyncio
    async def test_concurrent_accepts_single_winner(self, service, order_store, ready_order, mock_gateway) -> None:
        """Пять курьеров принимают заказ одновременно: побеждает ровно один."""
        couriers = [f"c-{i}" for i in range(5)]

        results = await asyncio.gather(*(service.accept(ready_order.id, c) for c in couriers))

        winners = [r for r in results if r.success]
        losers = [r for r in results if not r.success]
        assert len(winners) == 1
        assert len(losers) == 4
        assert all(r.reason == ALREADY_ASSIGNED for r in losers)
        assert order_store.orders[ready_order.id].rider_id == winners[0].rider_id
        assert order_store.writes == 1
        assert mock_gateway.emit_many.await_count == 1

    @pytest.mark.asyncio
    async def test_same_courier_accepts_twice(self, service, ready_order, mock_gateway) -> None:
        """Повторное принятие тем же курьером не рассылает уведомления снова."""
        await service.accept(ready_order.id, "c-1")

        again = await service.accept(ready_order.id, "c-1")

        assert again.success is True
        assert again.rider_id == "c-1"
        assert mock_gateway.emit_many.await_count == 1

    @pytest.mark.asyncio
    async def test_customer_token_cannot_accept(self, service, order_store, ready_order) -> None:
        """Пользователь без записи курьера не может закрепить заказ за собой."""
        with pytest.raises(Forbidden):
            await service.accept(ready_order.id, ready_order.user_id)

        assert order_store.orders[ready_order.id].rider_id is None
        assert order_store.writes == 0

    @pytest.mark.asyncio
    async def test_unverified_courier_cannot_accept(self, service, courier_store, order_store, ready_order,
                                                    mock_gateway) -> None:
        courier_store.put("c-new", is_verified=False)

        with pytest.raises(Forbidden):
            await service.accept(ready_order.id, "c-new")

        assert order_store.orders[ready_order.id].rider_id is None
        mock_gateway.emit_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_order(self, service) -> None:
        with pytest.raises(DataIntegrityViolation):
            await service.accept("missing", "c-1")

    @pytest.mark.asyncio
    async def test_not_ready(self, service, order_store, make_order) -> None:
        order_store.put(make_order(status=OrderStatus.PREPARING, payment_status=PaymentStatus.PAID))

        with pytest.raises(InvalidTransition):
            await service.accept("order-1", "c-1")

    @pytest.mark.asyncio
    async def test_gateway_down_does_not_undo_assignment(self, service, order_store, ready_order,
                                                         mock_gateway) -> None:
        mock_gateway.emit_many.side_effect = lambda targets: [False] * len(targets)

        result = await service.accept(ready_order.id, "c-1")

        assert result.success is True
        assert order_store.orders[ready_order.id].rider_id == "c-1"


class TestUpdateStatus:

    @pytest.mark.asyncio
    async def test_pickup_then_deliver(self, service, order_store, ready_order, mock_gateway) -> None:
        await service.accept(ready_order.id, "c-1")

        await service.update_status(ready_order.id, "c-1", OrderStatus.PICKED_UP)
        delivered = await service.update_status(ready_order.id, "c-1", OrderStatus.DELIVERED)

        assert delivered.status == OrderStatus.DELIVERED
        targets = mock_gateway.emit_many.call_args.args[0]
        assert targets[0][1] == RealtimeEvents.STATUS_UPDATED
        assert targets[0][2]["status"] == "delivered"

    @pytest.mark.asyncio
    async def test_repeated_delivered_not_notified(self, service, ready_order, mock_gateway) -> None:
        """Повторная отметка delivered отклоняется и не дублирует уведомления."""
        await service.accept(ready_order.id, "c-1")
        await service.update_status(ready_order.id, "c-1", OrderStatus.PICKED_UP)
        await service.update_status(ready_order.id, "c-1", OrderStatus.DELIVERED)
        notified = mock_gateway.emit_many.await_count

        with pytest.raises(InvalidTransition):
            await service.update_status(ready_order.id, "c-1", OrderStatus.DELIVERED)

        assert mock_gateway.emit_many.await_count == notified == 3

    @pytest.mark.asyncio
    async def test_other_courier_forbidden(self, service, ready_order) -> None:
        await service.accept(ready_order.id, "c-1")

        with pytest.raises(Forbidden):
            await service.update_status(ready_order.id, "c-2", OrderStatus.PICKED_UP)

    @pytest.mark.asyncio
    async def test_current_order(self, service, ready_order) -> None:
        assert await service.current_order("c-1") is None

        await service.accept(ready_order.id, "c-1")

        current = await service.current_order("c-1")
        assert current is not None
        assert current.id == ready_order.id
