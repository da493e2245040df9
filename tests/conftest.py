# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
os.environ.setdefault("INTERNAL_SERVICE_KEY", "test_internal_key")

from jose import jwt  # noqa: E402

from src.common.constants import OrderStatus, PaymentStatus  # noqa: E402
from src.common.exceptions import (  # noqa: E402
    AssignmentConflict,
    DataIntegrityViolation,
    Forbidden,
    InvalidTransition,
)
from src.core.couriers.models import Courier  # noqa: E402
from src.core.orders.models import AssignmentResult, Order, SettlementResult  # noqa: E402
from src.core.orders.state_machine import OrderStateMachine  # noqa: E402
from src.shared.models.location import GeoPoint  # noqa: E402

JWT_SECRET = "test_jwt_secret"
INTERNAL_KEY = "test_internal_key"


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def jwt_secret() -> str:
    return JWT_SECRET


@pytest.fixture
def internal_key() -> str:
    return INTERNAL_KEY


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Фабрика JWT, как их выпускает сервис идентификации."""

    def _make(
        user_id: str = "user-1",
        restaurant_id: Optional[str] = None,
        secret: str = JWT_SECRET,
        expires_in: timedelta = timedelta(hours=1),
    ) -> str:
        user: dict[str, Any] = {"_id": user_id}
        if restaurant_id:
            user["restaurantId"] = restaurant_id
        claims = {"user": user, "exp": datetime.now(timezone.utc) + expires_in}
        return jwt.encode(claims, secret, algorithm="HS256")

    return _make


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_event_bus() -> MagicMock:
    """Мок шины событий."""
    event_bus = MagicMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.consume = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


@pytest.fixture
def mock_gateway() -> AsyncMock:
    """Мок клиента gateway: все отправки успешны."""
    gateway = AsyncMock()
    gateway.emit = AsyncMock(return_value=True)
    gateway.emit_many = AsyncMock(side_effect=lambda targets: [True] * len(targets))
    return gateway


# =============================================================================
# ФИКСТУРЫ МОДЕЛЕЙ
# =============================================================================

@pytest.fixture
def make_order_row() -> Callable[..., dict[str, Any]]:
    """Фабрика строк таблицы orders (как их возвращает asyncpg)."""

    def _make(**overrides: Any) -> dict[str, Any]:
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        row = {
            "id": "order-1",
            "user_id": "user-1",
            "restaurant_id": "rest-1",
            "status": OrderStatus.PLACED.value,
            "payment_status": PaymentStatus.PENDING.value,
            "rider_id": None,
            "delivery_latitude": 52.52,
            "delivery_longitude": 13.405,
            "expires_at": now + timedelta(minutes=15),
            "payment_reference": None,
            "created_at": now,
            "updated_at": now,
        }
        row.update(overrides)
        return row

    return _make


@pytest.fixture
def make_order() -> Callable[..., Order]:
    def _make(**overrides: Any) -> Order:
        data: dict[str, Any] = {
            "id": "order-1",
            "user_id": "user-1",
            "restaurant_id": "rest-1",
            "status": OrderStatus.PLACED,
            "payment_status": PaymentStatus.PENDING,
            "delivery_location": GeoPoint.from_lat_lon(52.52, 13.405),
        }
        data.update(overrides)
        return Order(**data)

    return _make


# =============================================================================
# IN-MEMORY ХРАНИЛИЩЕ ЗАКАЗОВ
# =============================================================================

class InMemoryOrderStore:
    """
    Двойник OrderRepository с теми же условными обновлениями.

    Каждая операция уступает управление циклу событий перед проверкой
    условия, а проверка и запись выполняются без await — так конкурентные
    вызовы через asyncio.gather перемешиваются, как запросы к БД.
    """

    def __init__(self) -> None:
        self.orders: dict[str, Order] = {}
        self.writes = 0

    def put(self, order: Order) -> Order:
        self.orders[order.id] = order
        return order

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        await asyncio.sleep(0)
        return self.orders.get(order_id)

    def _require(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise DataIntegrityViolation(f"Заказ {order_id} не найден")
        return order

    def _write(self, order: Order, **changes: Any) -> Order:
        updated = order.model_copy(update={**changes, "updated_at": datetime.now(timezone.utc)})
        self.orders[order.id] = updated
        self.writes += 1
        return updated

    async def settle_payment(self, order_id: str, payment_reference: str) -> SettlementResult:
        await asyncio.sleep(0)
        order = self._require(order_id)
        sources = OrderStateMachine.allowed_sources(OrderStatus.PAID)
        if order.payment_status == PaymentStatus.PENDING and order.status in sources:
            updated = self._write(
                order,
                status=OrderStatus.PAID,
                payment_status=PaymentStatus.PAID,
                expires_at=None,
                payment_reference=payment_reference,
            )
            return SettlementResult(order=updated, changed=True)
        if order.payment_status == PaymentStatus.PAID:
            return SettlementResult(order=order, changed=False)
        raise InvalidTransition(order_id, order.status, OrderStatus.PAID)

    async def assign_rider(self, order_id: str, rider_id: str) -> AssignmentResult:
        await asyncio.sleep(0)
        order = self._require(order_id)
        if order.rider_id is None and order.status == OrderStatus.READY_FOR_PICKUP:
            updated = self._write(order, rider_id=rider_id, status=OrderStatus.RIDER_ASSIGNED)
            return AssignmentResult(order=updated, changed=True)
        if order.rider_id is not None:
            if order.rider_id == rider_id and order.status == OrderStatus.RIDER_ASSIGNED:
                return AssignmentResult(order=order, changed=False)
            raise AssignmentConflict(order_id, order.rider_id)
        raise InvalidTransition(order_id, order.status, OrderStatus.RIDER_ASSIGNED)

    async def update_by_rider(self, order_id: str, rider_id: str, target: OrderStatus) -> Order:
        await asyncio.sleep(0)
        target = OrderStatus(target)
        order = self._require(order_id)
        if order.rider_id != rider_id:
            raise Forbidden(f"Заказ {order_id} не назначен курьеру {rider_id}")
        if OrderStateMachine.can_transition(order.status, target):
            return self._write(order, status=target)
        raise InvalidTransition(order_id, order.status, target)

    async def get_active_by_rider(self, rider_id: str) -> Optional[Order]:
        await asyncio.sleep(0)
        for order in self.orders.values():
            if order.rider_id == rider_id and order.status in (OrderStatus.RIDER_ASSIGNED, OrderStatus.PICKED_UP):
                return order
        return None


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


class InMemoryCourierStore:
    """Двойник CourierRepository: только чтение курьера по ID."""

    def __init__(self) -> None:
        self.couriers: dict[str, Courier] = {}

    def put(self, courier_id: str, is_verified: bool = True, is_available: bool = True) -> Courier:
        courier = Courier(
            id=courier_id,
            location=GeoPoint.from_lat_lon(52.52, 13.405),
            is_available=is_available,
            is_verified=is_verified,
        )
        self.couriers[courier_id] = courier
        return courier

    async def get_by_id(self, courier_id: str) -> Optional[Courier]:
        await asyncio.sleep(0)
        return self.couriers.get(courier_id)


@pytest.fixture
def courier_store() -> InMemoryCourierStore:
    """Проверенные курьеры c-0 ... c-4."""
    store = InMemoryCourierStore()
    for i in range(5):
        store.put(f"c-{i}")
    return store
