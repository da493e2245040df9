# src/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import OrderStatus, PaymentStatus
from src.shared.models.location import GeoPoint

# Статусы, после которых заказ не меняется
TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.EXPIRED})

# Статусы заказа, закреплённого за курьером
RIDER_ACTIVE_STATUSES = (OrderStatus.RIDER_ASSIGNED, OrderStatus.PICKED_UP)


class Order(BaseModel):
    """Модель заказа."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(default_factory=lambda: str(uuid4()), description="ID заказа")
    user_id: str = Field(..., description="ID клиента")
    restaurant_id: str = Field(..., description="ID ресторана")
    status: OrderStatus = Field(OrderStatus.PLACED, description="Статус заказа")
    payment_status: PaymentStatus = Field(PaymentStatus.PENDING, description="Статус оплаты")
    rider_id: Optional[str] = Field(None, description="ID назначенного курьера")

    # Снимок адреса доставки на момент создания, не пересчитывается
    delivery_location: GeoPoint = Field(..., description="Точка доставки")

    expires_at: Optional[datetime] = Field(None, description="Срок оплаты")
    payment_reference: Optional[str] = Field(None, description="Идентификатор платежа")

    created_at: Optional[datetime] = Field(None, description="Время создания")
    updated_at: Optional[datetime] = Field(None, description="Время изменения")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_assigned(self) -> bool:
        return self.rider_id is not None

    def to_public(self) -> dict[str, Any]:
        """Представление заказа для клиентов (camelCase, как в push-событиях)."""
        return {
            "orderId": self.id,
            "userId": self.user_id,
            "restaurantId": self.restaurant_id,
            "status": self.status.value,
            "paymentStatus": self.payment_status.value,
            "riderId": self.rider_id,
            "deliveryLocation": self.delivery_location.model_dump(),
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }


class OrderCreate(BaseModel):
    """Данные для создания заказа (от сервиса оформления заказов)."""

    id: Optional[str] = Field(None, description="ID заказа (генерируется, если не задан)")
    user_id: str = Field(..., min_length=1)
    restaurant_id: str = Field(..., min_length=1)
    delivery_location: GeoPoint


class SettlementResult(BaseModel):
    """Результат условного обновления при подтверждении оплаты."""

    order: Order
    # False: заказ уже был оплачен, повторная доставка события
    changed: bool


class AssignmentResult(BaseModel):
    """Результат условного назначения курьера."""

    order: Order
    # False: тот же курьер принял заказ повторно, строка не менялась
    changed: bool
