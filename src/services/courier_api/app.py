# src/services/courier_api/app.py
"""
FastAPI приложение для Courier API.

Endpoints:
- POST /api/v1/rider/accept/{order_id} - принять предложенный заказ
- GET /api/v1/rider/order/current - текущий заказ курьера
- PUT /api/v1/rider/order/update/{order_id} - picked_up / delivered
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.common.constants import OrderStatus, TypeMsg
from src.common.exceptions import DataIntegrityViolation, Forbidden, InvalidTransition, StorageUnavailable
from src.common.logger import log_info
from src.core.assignment.service import AssignmentService
from src.services.courier_api.dependencies import Assignment, CurrentCourier
from src.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "courier_api"


# === REQUEST/RESPONSE MODELS ===

class StatusUpdateRequest(BaseModel):
    """Новый статус доставки."""
    status: Literal["picked_up", "delivered"]


class AcceptResponse(BaseModel):
    success: bool
    riderId: Optional[str] = None
    reason: Optional[str] = None


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error_code=code, message=message).model_dump(),
    )


def create_app(
    assignment: Optional[AssignmentService] = None,
    jwt_secret: Optional[str] = None,
    jwt_algorithm: Optional[str] = None,
) -> FastAPI:
    """
    Создаёт приложение Courier API.
    Без переданного сервиса назначения зависимости поднимаются в lifespan.
    """
    from src.config import settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        from src.core.couriers.repository import CourierRepository
        from src.core.notifications.gateway_client import GatewayClient
        from src.core.orders.repository import OrderRepository
        from src.infra.database import close_db, init_db

        gateway = None
        # Startup
        if app.state.assignment is None:
            db = await init_db()
            app.state.db = db
            gateway = GatewayClient()
            app.state.assignment = AssignmentService(OrderRepository(db), CourierRepository(db), gateway)

        await log_info("Courier API запущен", type_msg=TypeMsg.INFO)

        yield

        # Shutdown
        if gateway is not None:
            await gateway.close()
            await close_db()

    app = FastAPI(
        title="Courier API",
        description="Принятие заказов курьерами и обновление статуса доставки.",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.assignment = assignment
    app.state.db = None
    app.state.auth = {"secret": jwt_secret, "algorithm": jwt_algorithm}

    # === ERROR HANDLERS ===

    @app.exception_handler(DataIntegrityViolation)
    async def not_found_handler(request: Request, exc: DataIntegrityViolation) -> JSONResponse:
        return _error(404, "order_not_found", str(exc))

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
        return _error(409, "invalid_transition", str(exc))

    @app.exception_handler(Forbidden)
    async def forbidden_handler(request: Request, exc: Forbidden) -> JSONResponse:
        return _error(403, "forbidden", str(exc))

    @app.exception_handler(StorageUnavailable)
    async def storage_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
        return _error(503, "storage_unavailable", "Хранилище временно недоступно")

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса."""
        dependencies = {}
        if app.state.db is not None:
            dependencies["database"] = "ok" if await app.state.db.health_check() else "unavailable"
        return HealthStatus(
            status="unhealthy" if dependencies.get("database") == "unavailable" else "healthy",
            service=SERVICE_NAME,
            version=settings.system.VERSION,
            dependencies=dependencies,
        )

    # === RIDER ENDPOINTS ===

    @app.post(
        "/api/v1/rider/accept/{order_id}",
        response_model=AcceptResponse,
        response_model_exclude_none=True,
        responses={
            403: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            409: {"model": AcceptResponse},
        },
        tags=["Rider"],
        summary="Принять заказ",
    )
    async def accept_order(order_id: str, courier: CurrentCourier, service: Assignment) -> Any:
        """
        Принять предложенный заказ.

        Из нескольких курьеров, принявших заказ одновременно, успешен
        ровно один; остальные получают 409 `already assigned`.
        """
        result = await service.accept(order_id, courier.user_id)
        if not result.success:
            return JSONResponse(
                status_code=409,
                content=AcceptResponse(success=False, reason=result.reason).model_dump(exclude_none=True),
            )
        return AcceptResponse(success=True, riderId=result.rider_id)

    @app.get(
        "/api/v1/rider/order/current",
        tags=["Rider"],
        summary="Текущий заказ",
    )
    async def current_order(courier: CurrentCourier, service: Assignment) -> Optional[dict[str, Any]]:
        """Заказ, назначенный курьеру и ещё не доставленный, или null."""
        order = await service.current_order(courier.user_id)
        return order.to_public() if order else None

    @app.put(
        "/api/v1/rider/order/update/{order_id}",
        responses={
            403: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse},
        },
        tags=["Rider"],
        summary="Обновить статус доставки",
    )
    async def update_order_status(
        order_id: str,
        body: StatusUpdateRequest,
        courier: CurrentCourier,
        service: Assignment,
    ) -> dict[str, Any]:
        """Отметить заказ забранным из ресторана или доставленным."""
        order = await service.update_status(order_id, courier.user_id, OrderStatus(body.status))
        return order.to_public()

    return app
