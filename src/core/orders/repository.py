# src/core/orders/repository.py
"""
Репозиторий заказов (PostgreSQL).

Каждое изменение — один условный UPDATE ... RETURNING: строка меняется
только если текущее состояние допускает переход. Если ни одна строка
не изменилась, заказ перечитывается, чтобы отличить отсутствие заказа,
повторную доставку и недопустимый переход.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from asyncpg import Record

from src.common.constants import OrderStatus, PaymentStatus, TypeMsg
from src.common.exceptions import AssignmentConflict, DataIntegrityViolation, Forbidden, InvalidTransition
from src.common.logger import log_info
from src.core.orders.models import (
    RIDER_ACTIVE_STATUSES,
    AssignmentResult,
    Order,
    OrderCreate,
    SettlementResult,
)
from src.core.orders.state_machine import OrderStateMachine
from src.infra.database import DatabaseManager
from src.shared.models.location import GeoPoint

ORDER_COLUMNS = """
    id, user_id, restaurant_id, status, payment_status, rider_id,
    delivery_latitude, delivery_longitude, expires_at, payment_reference,
    created_at, updated_at
"""


def _values(statuses: list[OrderStatus] | tuple[OrderStatus, ...]) -> list[str]:
    return [s.value for s in statuses]


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, db: DatabaseManager, payment_window_minutes: int | None = None) -> None:
        """
        Инициализация репозитория.

        Args:
            db: Менеджер базы данных (Dependency Injection)
            payment_window_minutes: Срок оплаты нового заказа (по умолчанию из конфига)
        """
        self._db = db
        if payment_window_minutes is None:
            from src.config import settings
            payment_window_minutes = settings.orders.PAYMENT_WINDOW_MINUTES
        self._payment_window = timedelta(minutes=payment_window_minutes)

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        row = await self._db.fetchrow(
            f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = $1",
            order_id,
        )
        return self._row_to_order(row) if row else None

    async def get_active_by_rider(self, rider_id: str) -> Optional[Order]:
        """Текущий заказ курьера (назначен или забран из ресторана)."""
        row = await self._db.fetchrow(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM orders
            WHERE rider_id = $1
              AND status = ANY($2::text[])
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            rider_id,
            _values(RIDER_ACTIVE_STATUSES),
        )
        return self._row_to_order(row) if row else None

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def create(self, data: OrderCreate, now: datetime | None = None) -> Order:
        """
        Создаёт заказ в статусе placed с неоплаченным платежом.
        expires_at = created_at + окно оплаты.
        """
        created_at = now or datetime.now(timezone.utc)
        row = await self._db.fetchrow(
            f"""
            INSERT INTO orders (
                id, user_id, restaurant_id, status, payment_status,
                delivery_latitude, delivery_longitude, expires_at,
                created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $9)
            RETURNING {ORDER_COLUMNS}
            """,
            data.id or str(uuid4()),
            data.user_id,
            data.restaurant_id,
            OrderStatus.PLACED.value,
            PaymentStatus.PENDING.value,
            data.delivery_location.latitude,
            data.delivery_location.longitude,
            created_at + self._payment_window,
            created_at,
        )
        order = self._row_to_order(row)
        await log_info(f"Заказ {order.id} создан, оплата до {order.expires_at}", type_msg=TypeMsg.DEBUG)
        return order

    async def settle_payment(self, order_id: str, payment_reference: str) -> SettlementResult:
        """
        Подтверждает оплату: payment_status=paid, status=paid, expires_at=NULL.

        Повторная доставка того же события возвращает changed=False.

        Raises:
            DataIntegrityViolation: Заказ не найден
            InvalidTransition: Заказ отменён или истёк
        """
        row = await self._db.fetchrow(
            f"""
            UPDATE orders
            SET payment_status = $2,
                status = $2,
                expires_at = NULL,
                payment_reference = $3,
                updated_at = now()
            WHERE id = $1
              AND payment_status = $4
              AND status = ANY($5::text[])
            RETURNING {ORDER_COLUMNS}
            """,
            order_id,
            PaymentStatus.PAID.value,
            payment_reference,
            PaymentStatus.PENDING.value,
            _values(OrderStateMachine.allowed_sources(OrderStatus.PAID)),
        )
        if row is not None:
            return SettlementResult(order=self._row_to_order(row), changed=True)

        current = await self._require(order_id)
        if current.payment_status == PaymentStatus.PAID:
            return SettlementResult(order=current, changed=False)
        raise InvalidTransition(order_id, current.status, OrderStatus.PAID)

    async def transition(self, order_id: str, target: OrderStatus) -> Order:
        """
        Переводит заказ в target, если текущий статус — допустимый предшественник.
        Повторный переход в тот же статус тоже отклоняется: так видна
        повторная или переупорядоченная доставка.

        Raises:
            DataIntegrityViolation: Заказ не найден
            InvalidTransition: Переход не разрешён
        """
        target = OrderStatus(target)
        if target in (OrderStatus.RIDER_ASSIGNED, OrderStatus.EXPIRED, OrderStatus.PAID, OrderStatus.CANCELLED):
            # У этих переходов собственные условия и операции
            raise InvalidTransition(order_id, None, target)

        row = await self._db.fetchrow(
            f"""
            UPDATE orders
            SET status = $2, updated_at = now()
            WHERE id = $1
              AND status = ANY($3::text[])
            RETURNING {ORDER_COLUMNS}
            """,
            order_id,
            target.value,
            _values(OrderStateMachine.allowed_sources(target)),
        )
        if row is not None:
            return self._row_to_order(row)

        current = await self._require(order_id)
        raise InvalidTransition(order_id, current.status, target)

    async def assign_rider(self, order_id: str, rider_id: str) -> AssignmentResult:
        """
        Атомарно закрепляет заказ за курьером.
        Из конкурирующих вызовов успешен ровно один. Повторное принятие
        тем же курьером возвращает changed=False.

        Raises:
            DataIntegrityViolation: Заказ не найден
            AssignmentConflict: Заказ уже назначен другому курьеру
            InvalidTransition: Заказ не готов к выдаче
        """
        row = await self._db.fetchrow(
            f"""
            UPDATE orders
            SET rider_id = $2, status = $3, updated_at = now()
            WHERE id = $1
              AND rider_id IS NULL
              AND status = $4
            RETURNING {ORDER_COLUMNS}
            """,
            order_id,
            rider_id,
            OrderStatus.RIDER_ASSIGNED.value,
            OrderStatus.READY_FOR_PICKUP.value,
        )
        if row is not None:
            return AssignmentResult(order=self._row_to_order(row), changed=True)

        current = await self._require(order_id)
        if current.rider_id is not None:
            if current.rider_id == rider_id and current.status == OrderStatus.RIDER_ASSIGNED:
                return AssignmentResult(order=current, changed=False)
            raise AssignmentConflict(order_id, current.rider_id)
        raise InvalidTransition(order_id, current.status, OrderStatus.RIDER_ASSIGNED)

    async def update_by_rider(self, order_id: str, rider_id: str, target: OrderStatus) -> Order:
        """
        Переход picked_up/delivered, разрешённый только назначенному курьеру.

        Raises:
            DataIntegrityViolation: Заказ не найден
            Forbidden: Заказ назначен другому курьеру
            InvalidTransition: Переход не разрешён
        """
        target = OrderStatus(target)
        if target not in (OrderStatus.PICKED_UP, OrderStatus.DELIVERED):
            raise InvalidTransition(order_id, None, target)

        row = await self._db.fetchrow(
            f"""
            UPDATE orders
            SET status = $3, updated_at = now()
            WHERE id = $1
              AND rider_id = $2
              AND status = ANY($4::text[])
            RETURNING {ORDER_COLUMNS}
            """,
            order_id,
            rider_id,
            target.value,
            _values(OrderStateMachine.allowed_sources(target)),
        )
        if row is not None:
            return self._row_to_order(row)

        current = await self._require(order_id)
        if current.rider_id != rider_id:
            raise Forbidden(f"Заказ {order_id} не назначен курьеру {rider_id}")
        raise InvalidTransition(order_id, current.status, target)

    async def cancel(self, order_id: str) -> Order:
        """
        Отменяет нетерминальный заказ. Единственная операция,
        которая возвращает rider_id в NULL.
        """
        row = await self._db.fetchrow(
            f"""
            UPDATE orders
            SET status = $2, rider_id = NULL, expires_at = NULL, updated_at = now()
            WHERE id = $1
              AND status = ANY($3::text[])
            RETURNING {ORDER_COLUMNS}
            """,
            order_id,
            OrderStatus.CANCELLED.value,
            _values(OrderStateMachine.allowed_sources(OrderStatus.CANCELLED)),
        )
        if row is not None:
            await log_info(f"Заказ {order_id} отменён", type_msg=TypeMsg.INFO)
            return self._row_to_order(row)

        current = await self._require(order_id)
        raise InvalidTransition(order_id, current.status, OrderStatus.CANCELLED)

    # =========================================================================
    # ВСПОМОГАТЕЛЬНЫЕ
    # =========================================================================

    async def _require(self, order_id: str) -> Order:
        order = await self.get_by_id(order_id)
        if order is None:
            raise DataIntegrityViolation(f"Заказ {order_id} не найден")
        return order

    @staticmethod
    def _row_to_order(row: Record) -> Order:
        return Order(
            id=row["id"],
            user_id=row["user_id"],
            restaurant_id=row["restaurant_id"],
            status=OrderStatus(row["status"]),
            payment_status=PaymentStatus(row["payment_status"]),
            rider_id=row["rider_id"],
            delivery_location=GeoPoint.from_lat_lon(row["delivery_latitude"], row["delivery_longitude"]),
            expires_at=row["expires_at"],
            payment_reference=row["payment_reference"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
