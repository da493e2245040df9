# src/core/orders/__init__.py
"""
Домен заказов: модели, машина состояний, хранилище с условными обновлениями.
"""

from src.core.orders.expiry import OrderExpiry
from src.core.orders.models import AssignmentResult, Order, OrderCreate, SettlementResult
from src.core.orders.repository import OrderRepository
from src.core.orders.state_machine import OrderStateMachine

__all__ = [
    "AssignmentResult",
    "Order",
    "OrderCreate",
    "SettlementResult",
    "OrderStateMachine",
    "OrderRepository",
    "OrderExpiry",
]
