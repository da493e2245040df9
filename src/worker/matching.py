# src/worker/matching.py
"""
Консьюмер подбора курьеров (очередь ORDER_READY_QUEUE).
"""

from __future__ import annotations

from typing import Optional

from src.common.constants import AckDecision, OrderStatus, RealtimeEvents, TypeMsg
from src.common.exceptions import DataIntegrityViolation, NoCandidateFound
from src.common.logger import log_info, log_warning
from src.core.couriers.repository import CourierRepository
from src.core.notifications.gateway_client import GatewayClient
from src.core.orders.repository import OrderRepository
from src.infra.event_bus import EventBus
from src.shared.events import OrderReadyForPickup
from src.shared.rooms import user_room
from src.worker.base import BaseWorker


class CourierMatchingWorker(BaseWorker):
    """
    Рассылает предложение заказа всем доступным курьерам в радиусе.

    Назначение здесь не происходит: курьеры принимают заказ сами
    через протокол назначения, побеждает первый.
    """

    def __init__(
        self,
        orders: OrderRepository,
        couriers: CourierRepository,
        gateway: GatewayClient,
        radius_m: Optional[float] = None,
        max_offers: Optional[int] = None,
        queue_name: Optional[str] = None,
        event_bus: Optional[EventBus] = None,
    ) -> None:
        super().__init__(event_bus=event_bus)
        self._orders = orders
        self._couriers = couriers
        self._gateway = gateway

        if radius_m is None or max_offers is None or queue_name is None:
            from src.config import settings
            radius_m = radius_m if radius_m is not None else settings.matching.MATCHING_RADIUS_METERS
            max_offers = max_offers if max_offers is not None else settings.matching.MAX_COURIERS_TO_NOTIFY
            queue_name = queue_name or settings.rabbitmq.ORDER_READY_QUEUE

        self.radius_m = radius_m
        self.max_offers = max_offers
        self._queue_name = queue_name

    @property
    def name(self) -> str:
        return "CourierMatchingWorker"

    @property
    def queue_name(self) -> str:
        return self._queue_name

    async def handle(self, envelope: OrderReadyForPickup) -> AckDecision:
        if not isinstance(envelope, OrderReadyForPickup):
            await log_warning(f"{self.name}: неожиданный тип {envelope.type} в {self.queue_name}")
            return AckDecision.DEAD_LETTER

        data = envelope.data
        order = await self._orders.get_by_id(data.order_id)
        if order is None:
            raise DataIntegrityViolation(f"Заказ {data.order_id} из {envelope.type} не найден")

        if order.rider_id is not None or order.status != OrderStatus.READY_FOR_PICKUP:
            # Повторная доставка после назначения или отмены
            await log_info(
                f"Заказ {order.id} уже не ждёт курьера ({order.status}), предложения не рассылаются",
                type_msg=TypeMsg.DEBUG,
            )
            return AckDecision.ACK

        try:
            return await self._offer(order.id, data.restaurant_id or order.restaurant_id, data)
        except NoCandidateFound as e:
            await log_info(str(e), type_msg=TypeMsg.WARNING)
            return AckDecision.RETRY_LATER

    async def _offer(self, order_id: str, restaurant_id: str, data) -> AckDecision:
        candidates = await self._couriers.find_available_near(data.pickup_location, self.radius_m, self.max_offers)
        if not candidates:
            raise NoCandidateFound(order_id, self.radius_m)

        results = await self._gateway.emit_many([
            (
                user_room(candidate.courier_id),
                RealtimeEvents.ORDER_AVAILABLE,
                {
                    "orderId": order_id,
                    "restaurantId": restaurant_id,
                    "distanceMeters": candidate.distance_m,
                },
            )
            for candidate in candidates
        ])

        delivered = sum(results)
        if delivered == 0:
            # Gateway недоступен: повтор с задержкой, после исчерпания попыток - DLQ
            await log_warning(f"Ни одно предложение по заказу {order_id} не доставлено, повтор с задержкой")
            return AckDecision.RETRY_LATER

        await log_info(
            f"Заказ {order_id} предложен {delivered}/{len(candidates)} курьерам в радиусе {self.radius_m:.0f} м",
            type_msg=TypeMsg.INFO,
        )
        return AckDecision.ACK
