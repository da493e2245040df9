# src/core/assignment/service.py
"""
Протокол назначения курьера.

Несколько курьеров получают одно предложение; принять заказ может ровно
один. Победитель определяется одним условным UPDATE в хранилище,
проигравшие получают результат "already assigned" без повторов.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from src.common.constants import OrderStatus, RealtimeEvents, TypeMsg
from src.common.exceptions import AssignmentConflict, Forbidden
from src.common.logger import log_info
from src.core.couriers.repository import CourierRepository
from src.core.notifications.gateway_client import GatewayClient
from src.core.orders.models import Order
from src.core.orders.repository import OrderRepository
from src.shared.rooms import order_room, restaurant_room, user_room

ALREADY_ASSIGNED = "already assigned"


class AcceptResult(BaseModel):
    success: bool
    rider_id: Optional[str] = None
    reason: Optional[str] = None
    order: Optional[Order] = None


class AssignmentService:
    """
    Сервис назначения и обновления статуса доставки курьером.

    Ошибки DataIntegrityViolation, InvalidTransition и Forbidden пробрасываются
    вызывающему (HTTP 404/409/403), конфликт назначения — нет.
    """

    def __init__(self, orders: OrderRepository, couriers: CourierRepository, gateway: GatewayClient) -> None:
        self._orders = orders
        self._couriers = couriers
        self._gateway = gateway

    async def accept(self, order_id: str, courier_id: str) -> AcceptResult:
        """
        Принять заказ может только зарегистрированный проверенный курьер.

        Raises:
            Forbidden: Курьер не найден или не проверен
        """
        courier = await self._couriers.get_by_id(courier_id)
        if courier is None or not courier.is_verified:
            raise Forbidden(f"Пользователь {courier_id} не является проверенным курьером")

        try:
            assignment = await self._orders.assign_rider(order_id, courier_id)
        except AssignmentConflict:
            await log_info(f"Курьер {courier_id} опоздал: заказ {order_id} уже назначен", type_msg=TypeMsg.DEBUG)
            return AcceptResult(success=False, reason=ALREADY_ASSIGNED)

        order = assignment.order
        if not assignment.changed:
            return AcceptResult(success=True, rider_id=courier_id, order=order)

        await log_info(f"Заказ {order_id} назначен курьеру {courier_id}", type_msg=TypeMsg.INFO)
        await self._notify_parties(order, RealtimeEvents.RIDER_ASSIGNED, {
            "orderId": order.id,
            "riderId": courier_id,
            "status": order.status.value,
        })
        return AcceptResult(success=True, rider_id=courier_id, order=order)

    async def current_order(self, courier_id: str) -> Optional[Order]:
        return await self._orders.get_active_by_rider(courier_id)

    async def update_status(self, order_id: str, courier_id: str, status: OrderStatus) -> Order:
        """Курьер отмечает заказ забранным или доставленным."""
        order = await self._orders.update_by_rider(order_id, courier_id, status)
        await log_info(f"Заказ {order_id}: статус {order.status} (курьер {courier_id})", type_msg=TypeMsg.INFO)
        await self._notify_parties(order, RealtimeEvents.STATUS_UPDATED, {
            "orderId": order.id,
            "status": order.status.value,
            "riderId": order.rider_id,
        })
        return order

    async def _notify_parties(self, order: Order, event: str, payload: dict) -> None:
        # Доставка best-effort: ошибки gateway не отменяют записанное состояние
        await self._gateway.emit_many([
            (user_room(order.user_id), event, payload),
            (restaurant_room(order.restaurant_id), event, payload),
            (order_room(order.id), event, payload),
        ])
