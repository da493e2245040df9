# src/services/realtime_ws/app.py
"""
FastAPI приложение для Realtime WebSocket Gateway.

WebSocket endpoint:
- /ws — первый кадр клиента {"auth": {"token": "..."}}; без валидного токена
  соединение закрывается с кодом 4401 до входа в какие-либо комнаты

REST endpoints:
- POST /internal/emit — публикация события в комнату (для консьюмеров)
- GET /health — проверка здоровья
- GET /stats — статистика соединений
"""

from __future__ import annotations

import asyncio
import hmac
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.common.constants import WS_CLOSE_UNAUTHORIZED, TypeMsg
from src.common.exceptions import Unauthorized
from src.common.logger import log_info
from src.services.realtime_ws.access import OrderAccessPolicy, RepositoryOrderAccess
from src.services.realtime_ws.backplane import RedisBackplane
from src.services.realtime_ws.connection_manager import RoomRegistry, Session
from src.shared.auth import Identity, verify_token
from src.shared.models.common import HealthStatus
from src.shared.rooms import is_valid_room, parse_room

SERVICE_NAME = "realtime_ws_gateway"


# === MODELS ===

class StatsResponse(BaseModel):
    """Статистика соединений."""
    active_connections: int
    total_rooms: int
    total_connections_ever: int
    total_messages_sent: int


# === HANDSHAKE ===

async def _handshake(
    websocket: WebSocket,
    timeout: float,
    jwt_secret: Optional[str],
    jwt_algorithm: Optional[str],
) -> Identity:
    """
    Ждёт первый кадр {"auth": {"token": ...}} и проверяет токен.

    Raises:
        Unauthorized: Нет кадра за timeout, кадр не того формата или токен невалиден
    """
    try:
        frame = await asyncio.wait_for(websocket.receive_json(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise Unauthorized("Не получен кадр авторизации") from e
    except (KeyError, ValueError) as e:
        # KeyError: бинарный кадр вместо текстового
        raise Unauthorized("Кадр авторизации — не текстовый JSON") from e

    auth = frame.get("auth") if isinstance(frame, dict) else None
    token = auth.get("token") if isinstance(auth, dict) else None
    return verify_token(token, jwt_secret, jwt_algorithm)


# === APP ===

def create_app(
    registry: Optional[RoomRegistry] = None,
    order_access: Optional[OrderAccessPolicy] = None,
    backplane: Optional[RedisBackplane] = None,
    internal_key: Optional[str] = None,
    jwt_secret: Optional[str] = None,
    jwt_algorithm: Optional[str] = None,
    handshake_timeout: Optional[float] = None,
) -> FastAPI:
    """
    Создаёт приложение gateway.

    Зависимости, не переданные явно, создаются в lifespan по конфигурации:
    политика доступа к заказам читает PostgreSQL, backplane — Redis
    (только при BACKPLANE_ENABLED).
    """
    from src.config import settings

    registry = registry or RoomRegistry(send_timeout=settings.realtime.SEND_TIMEOUT_SECONDS)
    if internal_key is None:
        internal_key = settings.realtime.INTERNAL_SERVICE_KEY
    if handshake_timeout is None:
        handshake_timeout = settings.realtime.HANDSHAKE_TIMEOUT_SECONDS

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Жизненный цикл приложения."""
        from src.infra.database import close_db, init_db
        from src.infra.redis_client import close_redis, init_redis
        from src.core.orders.repository import OrderRepository

        opened_db = opened_redis = False

        # Startup
        if app.state.order_access is None:
            db = await init_db(apply_schema=False)
            opened_db = True
            app.state.order_access = RepositoryOrderAccess(OrderRepository(db))

        if app.state.backplane is None and settings.realtime.BACKPLANE_ENABLED:
            redis_client = await init_redis()
            opened_redis = True
            app.state.backplane = RedisBackplane(
                redis_client,
                registry,
                prefix=settings.realtime.BACKPLANE_CHANNEL_PREFIX,
            )

        if app.state.backplane is not None:
            await app.state.backplane.start()

        await log_info("Realtime gateway запущен", type_msg=TypeMsg.INFO)

        yield

        # Shutdown
        if app.state.backplane is not None:
            await app.state.backplane.stop()
        if opened_redis:
            await close_redis()
        if opened_db:
            await close_db()

    app = FastAPI(
        title="Realtime WebSocket Gateway",
        description="Push-уведомления о заказах по комнатам пользователей, ресторанов и заказов.",
        version=settings.system.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.registry = registry
    app.state.order_access = order_access
    app.state.backplane = backplane

    # === HEALTH CHECK ===

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check() -> HealthStatus:
        """Проверка здоровья сервиса. Недоступный backplane — degraded: доставка идёт локально."""
        backplane = app.state.backplane
        if backplane is None:
            backplane_status = "disabled"
        else:
            backplane_status = "ok" if await backplane.health_check() else "unavailable"
        return HealthStatus(
            status="degraded" if backplane_status == "unavailable" else "healthy",
            service=SERVICE_NAME,
            version=settings.system.VERSION,
            dependencies={"backplane": backplane_status},
        )

    # === STATS ===

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    async def get_stats() -> StatsResponse:
        """Получить статистику соединений."""
        return StatsResponse(**registry.get_stats())

    # === INTERNAL EMIT ===

    @app.post("/internal/emit", tags=["Internal"])
    async def internal_emit(
        request: Request,
        x_internal_key: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        """
        Опубликовать событие в комнату.

        Body: {"event": "...", "room": "user:<id>", "payload": {...}}.
        Пустая комната — успех без побочных эффектов.
        """
        if not internal_key or not x_internal_key or not hmac.compare_digest(
            x_internal_key.encode("utf-8"), internal_key.encode("utf-8")
        ):
            return JSONResponse(status_code=403, content={"message": "Forbidden"})

        try:
            body = await request.json()
        except ValueError:
            return JSONResponse(status_code=400, content={"message": "Тело запроса — не JSON"})

        if not isinstance(body, dict):
            return JSONResponse(status_code=400, content={"message": "event and room are required"})

        event = body.get("event")
        room = body.get("room")
        payload = body.get("payload") or {}

        if not event or not room or not isinstance(event, str) or not isinstance(room, str):
            return JSONResponse(status_code=400, content={"message": "event and room are required"})
        if not is_valid_room(room):
            return JSONResponse(status_code=400, content={"message": f"Некорректный ключ комнаты: {room}"})
        if not isinstance(payload, dict):
            return JSONResponse(status_code=400, content={"message": "payload must be an object"})

        await log_info(f"Событие {event} → {room}", type_msg=TypeMsg.DEBUG)

        if app.state.backplane is not None:
            await app.state.backplane.publish(room, event, payload)
        else:
            await registry.emit_to_room(room, event, payload)

        return JSONResponse(status_code=200, content={"success": True})

    # === WEBSOCKET ===

    async def _handle_client_message(session: Session, data: Any) -> None:
        """Обработать сообщение от клиента."""
        action = data.get("action") if isinstance(data, dict) else None

        if action == "ping":
            await registry.send_to_session(session.session_id, "pong", {})
            return

        if action in ("subscribe", "unsubscribe"):
            room = data.get("room")
            if not isinstance(room, str) or not is_valid_room(room) or parse_room(room).kind != "order":
                await registry.send_to_session(session.session_id, "error", {
                    "message": "Допустимы только комнаты order:<id>",
                    "room": room,
                })
                return

            if action == "unsubscribe":
                await registry.leave(session.session_id, room)
                await registry.send_to_session(session.session_id, "unsubscribed", {"room": room})
                return

            policy = app.state.order_access
            order_id = parse_room(room).subject_id
            if policy is None or not await policy.can_access(session.identity, order_id):
                await registry.send_to_session(session.session_id, "error", {"message": "Forbidden", "room": room})
                return

            await registry.join(session.session_id, room)
            await registry.send_to_session(session.session_id, "subscribed", {"room": room})
            return

        await registry.send_to_session(session.session_id, "error", {"message": f"Неизвестное действие: {action}"})

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """
        WebSocket для клиентов, ресторанов и курьеров.

        Входящие сообщения после авторизации:
        - {"action": "subscribe", "room": "order:xxx"}
        - {"action": "unsubscribe", "room": "order:xxx"}
        - {"action": "ping"}
        """
        await websocket.accept()

        try:
            identity = await _handshake(websocket, handshake_timeout, jwt_secret, jwt_algorithm)
        except Unauthorized as e:
            await log_info(f"WebSocket отклонён: {e}", type_msg=TypeMsg.DEBUG)
            await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Unauthorized")
            return
        except WebSocketDisconnect:
            return

        session = registry.register(websocket, identity)
        try:
            for room in identity.default_rooms():
                await registry.join(session.session_id, room)
            await registry.send_to_session(session.session_id, "connected", {
                "rooms": sorted(session.rooms),
            })
            await log_info(f"Пользователь {identity.user_id} подключён: {sorted(session.rooms)}", type_msg=TypeMsg.DEBUG)

            while True:
                try:
                    data = await websocket.receive_json()
                except (KeyError, ValueError):
                    await registry.send_to_session(session.session_id, "error", {"message": "Ожидается текстовый JSON"})
                    continue
                await _handle_client_message(session, data)

        except WebSocketDisconnect:
            pass
        finally:
            await registry.disconnect(session.session_id)
            await log_info(f"Пользователь {identity.user_id} отключён", type_msg=TypeMsg.DEBUG)

    return app
