# tests/worker/test_payment_worker.py
"""
Тесты для консьюмера подтверждения оплаты.
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.common.constants import AckDecision, OrderStatus, PaymentStatus, RealtimeEvents
from src.common.exceptions import DataIntegrityViolation
from src.infra.event_bus import EventBus
from src.shared.events import parse_envelope
from src.worker.payment import PaymentSettlementWorker


def _payment(order_id: str = "order-1", reference: str = "pay-1"):
    return parse_envelope(json.dumps({
        "type": "PAYMENT_SUCCESS",
        "data": {"orderId": order_id, "paymentReference": reference},
    }))


@pytest.fixture
def worker(order_store, mock_gateway, mock_event_bus) -> PaymentSettlementWorker:
    return PaymentSettlementWorker(order_store, mock_gateway, queue_name="payment_success", event_bus=mock_event_bus)


class TestPaymentSettlementWorker:

    @pytest.mark.asyncio
    async def test_settles_and_notifies(self, worker, order_store, make_order, mock_gateway) -> None:
        order_store.put(make_order())

        decision = await worker.handle(_payment())

        assert decision == AckDecision.ACK
        order = order_store.orders["order-1"]
        assert order.status == OrderStatus.PAID
        assert order.payment_status == PaymentStatus.PAID
        assert order.expires_at is None
        assert order.payment_reference == "pay-1"

        targets = mock_gateway.emit_many.call_args.args[0]
        assert targets[0][0] == "user:user-1"
        assert targets[0][1] == RealtimeEvents.PAYMENT_CONFIRMED
        assert targets[1][0] == "restaurant:rest-1"
        assert targets[1][1] == RealtimeEvents.ORDER_NEW
        assert targets[1][2]["orderId"] == "order-1"

    @pytest.mark.asyncio
    async def test_redelivery_notifies_once(self, worker, order_store, make_order, mock_gateway) -> None:
        """N доставок одного события — одно изменение и одно уведомление."""
        order_store.put(make_order())

        decisions = [await worker.handle(_payment()) for _ in range(4)]

        assert decisions == [AckDecision.ACK] * 4
        assert order_store.writes == 1
        assert mock_gateway.emit_many.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_order_raises(self, worker) -> None:
        with pytest.raises(DataIntegrityViolation):
            await worker.handle(_payment("missing"))

    @pytest.mark.asyncio
    async def test_cancelled_order_acked_without_notification(self, worker, order_store, make_order,
                                                              mock_gateway) -> None:
        order_store.put(make_order(status=OrderStatus.CANCELLED))

        assert await worker.handle(_payment()) == AckDecision.ACK
        assert order_store.orders["order-1"].status == OrderStatus.CANCELLED
        mock_gateway.emit_many.assert_not_called()

    @pytest.mark.asyncio
    async def test_gateway_down_still_acks(self, worker, order_store, make_order, mock_gateway) -> None:
        mock_gateway.emit_many.side_effect = lambda targets: [False] * len(targets)
        order_store.put(make_order())

        assert await worker.handle(_payment()) == AckDecision.ACK
        assert order_store.orders["order-1"].payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_wrong_event_type_dead_lettered(self, worker) -> None:
        envelope = parse_envelope(json.dumps({
            "type": "ORDER_READY_FOR_PICKUP",
            "data": {"orderId": "o-1", "pickupLocation": {"type": "Point", "coordinates": [13.4, 52.5]}},
        }))

        assert await worker.handle(envelope) == AckDecision.DEAD_LETTER


class TestPaymentThroughEventBus:

    @pytest.mark.asyncio
    async def test_missing_order_goes_to_dead_letter(self, order_store, mock_gateway) -> None:
        EventBus._instance = None
        bus = EventBus()
        bus.escalation = AsyncMock()
        worker = PaymentSettlementWorker(order_store, mock_gateway, queue_name="payment_success", event_bus=bus)

        message = MagicMock()
        message.body = json.dumps({
            "type": "PAYMENT_SUCCESS",
            "data": {"orderId": "missing", "paymentReference": "pay-1"},
        }).encode()
        message.headers = {}
        message.reject = AsyncMock()

        decision = await bus.process_message("payment_success", message, worker._on_envelope, parse_envelope)

        assert decision == AckDecision.DEAD_LETTER
        message.reject.assert_awaited_once_with(requeue=False)
        EventBus._instance = None
