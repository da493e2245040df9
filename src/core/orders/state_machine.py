# src/core/orders/state_machine.py
"""
Машина состояний заказа.

placed → payment_pending → paid → preparing → ready_for_pickup →
rider_assigned → picked_up → delivered
Боковые ветки: payment_pending → expired, любой нетерминальный → cancelled.
"""

from __future__ import annotations

from src.common.constants import OrderStatus
from src.common.exceptions import InvalidTransition


class OrderStateMachine:
    ALLOWED_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
        # Оформление может не выставлять явный шаг payment_pending
        OrderStatus.PLACED: [
            OrderStatus.PAYMENT_PENDING, OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.CANCELLED,
        ],
        OrderStatus.PAYMENT_PENDING: [OrderStatus.PAID, OrderStatus.EXPIRED, OrderStatus.CANCELLED],
        OrderStatus.PAID: [OrderStatus.PREPARING, OrderStatus.CANCELLED],
        OrderStatus.PREPARING: [OrderStatus.READY_FOR_PICKUP, OrderStatus.CANCELLED],
        OrderStatus.READY_FOR_PICKUP: [OrderStatus.RIDER_ASSIGNED, OrderStatus.CANCELLED],
        OrderStatus.RIDER_ASSIGNED: [OrderStatus.PICKED_UP, OrderStatus.CANCELLED],
        OrderStatus.PICKED_UP: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
        OrderStatus.DELIVERED: [],
        OrderStatus.CANCELLED: [],
        OrderStatus.EXPIRED: [],
    }

    @staticmethod
    def can_transition(current_status: str, new_status: str) -> bool:
        try:
            curr = OrderStatus(current_status)
            new = OrderStatus(new_status)
        except ValueError:
            return False
        return new in OrderStateMachine.ALLOWED_TRANSITIONS.get(curr, [])

    @staticmethod
    def allowed_sources(target: str) -> list[OrderStatus]:
        """Статусы, из которых разрешён переход в target (для условия WHERE)."""
        new = OrderStatus(target)
        return [
            status
            for status, targets in OrderStateMachine.ALLOWED_TRANSITIONS.items()
            if new in targets
        ]

    @staticmethod
    def ensure_transition(order_id: str, current_status: str, new_status: str) -> None:
        """
        Raises:
            InvalidTransition: Переход не разрешён
        """
        if not OrderStateMachine.can_transition(current_status, new_status):
            raise InvalidTransition(order_id, current_status, new_status)
