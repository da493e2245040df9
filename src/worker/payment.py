# src/worker/payment.py
"""
Консьюмер подтверждения оплаты (очередь PAYMENT_QUEUE).
"""

from __future__ import annotations

from typing import Optional

from src.common.constants import AckDecision, RealtimeEvents, TypeMsg
from src.common.exceptions import InvalidTransition
from src.common.logger import log_info, log_warning
from src.core.notifications.gateway_client import GatewayClient
from src.core.orders.repository import OrderRepository
from src.infra.event_bus import EventBus
from src.shared.events import EventTags, PaymentSuccess
from src.shared.rooms import restaurant_room, user_room
from src.worker.base import BaseWorker


class PaymentSettlementWorker(BaseWorker):
    """
    Обрабатывает PAYMENT_SUCCESS: одно условное обновление заказа
    и уведомление клиента и ресторана.

    Повторная доставка того же события не меняет заказ и не шлёт
    повторное уведомление. Отсутствующий заказ уходит в dead-letter
    (DataIntegrityViolation обрабатывает EventBus), недоступность БД —
    повторная доставка.
    """

    def __init__(
        self,
        orders: OrderRepository,
        gateway: GatewayClient,
        queue_name: Optional[str] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        super().__init__(event_bus=event_bus)
        self._orders = orders
        self._gateway = gateway
        if queue_name is None:
            from src.config import settings
            queue_name = settings.rabbitmq.PAYMENT_QUEUE
        self._queue_name = queue_name

    @property
    def name(self) -> str:
        return "PaymentSettlementWorker"

    @property
    def queue_name(self) -> str:
        return self._queue_name

    async def handle(self, envelope: PaymentSuccess) -> AckDecision:
        if envelope.type != EventTags.PAYMENT_SUCCESS:
            await log_warning(f"{self.name}: неожиданный тип {envelope.type} в {self.queue_name}")
            return AckDecision.DEAD_LETTER

        order_id = envelope.data.order_id
        try:
            result = await self._orders.settle_payment(order_id, envelope.data.payment_reference)
        except InvalidTransition as e:
            # Заказ отменён или истёк до прихода оплаты: терминальный исход
            await log_warning(f"Оплата для заказа {order_id} не применена: {e}")
            return AckDecision.ACK

        if not result.changed:
            await log_info(f"Оплата заказа {order_id} уже подтверждена, повтор пропущен", type_msg=TypeMsg.DEBUG)
            return AckDecision.ACK

        order = result.order
        await log_info(f"Заказ {order_id} оплачен ({order.payment_reference})", type_msg=TypeMsg.INFO)

        await self._gateway.emit_many([
            (user_room(order.user_id), RealtimeEvents.PAYMENT_CONFIRMED, {
                "orderId": order.id,
                "status": order.status.value,
                "paymentStatus": order.payment_status.value,
            }),
            (restaurant_room(order.restaurant_id), RealtimeEvents.ORDER_NEW, order.to_public()),
        ])
        return AckDecision.ACK
