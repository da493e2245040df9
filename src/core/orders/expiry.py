# src/core/orders/expiry.py
"""
Интерфейс для внешнего сервиса истечения неоплаченных заказов.

Ядро ничего не удаляет по таймеру: оно выставляет expires_at при создании,
сбрасывает его при оплате и даёт внешнему sweeper две операции ниже.
Время истечения не точное — заказ истекает при ближайшем проходе sweeper.
"""

from __future__ import annotations

from datetime import datetime

from src.common.constants import OrderStatus, PaymentStatus, TypeMsg
from src.common.logger import log_info
from src.infra.database import DatabaseManager

_EXPIRABLE_STATUSES = [OrderStatus.PLACED.value, OrderStatus.PAYMENT_PENDING.value]


class OrderExpiry:
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def find_expirable(self, now: datetime, limit: int = 100) -> list[str]:
        """ID неоплаченных заказов с истёкшим сроком оплаты (старые первыми)."""
        rows = await self._db.fetch(
            """
            SELECT id
            FROM orders
            WHERE payment_status = $1
              AND expires_at <= $2
              AND status = ANY($3::text[])
            ORDER BY expires_at
            LIMIT $4
            """,
            PaymentStatus.PENDING.value,
            now,
            _EXPIRABLE_STATUSES,
            limit,
        )
        return [row["id"] for row in rows]

    async def mark_expired(self, order_id: str, now: datetime) -> bool:
        """
        Условно переводит заказ в expired.

        Returns:
            False, если заказ уже оплачен, отменён, удалён или срок не истёк
        """
        row = await self._db.fetchrow(
            """
            UPDATE orders
            SET status = $2,
                payment_status = $3,
                expires_at = NULL,
                updated_at = now()
            WHERE id = $1
              AND payment_status = $4
              AND expires_at <= $5
              AND status = ANY($6::text[])
            RETURNING id
            """,
            order_id,
            OrderStatus.EXPIRED.value,
            PaymentStatus.FAILED.value,
            PaymentStatus.PENDING.value,
            now,
            _EXPIRABLE_STATUSES,
        )
        if row is None:
            return False

        await log_info(f"Заказ {order_id} истёк без оплаты", type_msg=TypeMsg.INFO)
        return True
