# src/services/realtime_ws/access.py
"""
Политика доступа к комнатам заказов (order:<id>).
"""

from __future__ import annotations

from typing import Protocol

from src.core.orders.repository import OrderRepository
from src.shared.auth import Identity


class OrderAccessPolicy(Protocol):
    async def can_access(self, identity: Identity, order_id: str) -> bool:
        ...


class RepositoryOrderAccess:
    """Доступ есть у клиента заказа, назначенного курьера и ресторана."""

    def __init__(self, orders: OrderRepository) -> None:
        self._orders = orders

    async def can_access(self, identity: Identity, order_id: str) -> bool:
        order = await self._orders.get_by_id(order_id)
        if order is None:
            return False
        return (
            identity.user_id in (order.user_id, order.rider_id)
            or (identity.restaurant_id is not None and identity.restaurant_id == order.restaurant_id)
        )

