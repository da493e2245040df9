# src/services/realtime_ws/connection_manager.py
"""
Реестр комнат WebSocket gateway.

Членство в комнатах хранится только в памяти экземпляра и пропадает
при отключении сессии. Один пользователь может держать несколько сессий
(несколько устройств), каждая подписана на свои комнаты.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_warning
from src.shared.auth import Identity

RoomCallback = Callable[[str], Awaitable[None]]


@dataclass
class Session:
    """Авторизованное WebSocket-соединение."""
    websocket: WebSocket
    identity: Identity
    session_id: str = field(default_factory=lambda: uuid4().hex)
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    rooms: set[str] = field(default_factory=set)


class RoomRegistry:
    """
    Реестр сессий и комнат.

    Поддерживает:
    - Регистрацию сессии после успешного handshake
    - Вход/выход из комнат
    - Рассылку кадра {"event", "payload"} всем участникам комнаты
    - Колбэки на появление первого и уход последнего локального участника
      комнаты (для подписки backplane)
    """

    def __init__(self, send_timeout: float = 1.0) -> None:
        """
        Args:
            send_timeout: Предел ожидания отправки кадра одной сессии, с
        """
        self._send_timeout = send_timeout

        # session_id -> Session
        self._sessions: dict[str, Session] = {}

        # room -> set of session_ids
        self._rooms: dict[str, set[str]] = {}

        self.on_room_opened: Optional[RoomCallback] = None
        self.on_room_closed: Optional[RoomCallback] = None

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных сессий."""
        return len(self._sessions)

    def register(self, websocket: WebSocket, identity: Identity) -> Session:
        """Регистрирует уже принятое и авторизованное соединение."""
        session = Session(websocket=websocket, identity=identity)
        self._sessions[session.session_id] = session
        self._total_connections += 1
        return session

    async def join(self, session_id: str, room: str) -> bool:
        """Добавить сессию в комнату. False, если сессия не зарегистрирована."""
        session = self._sessions.get(session_id)
        if session is None:
            return False

        session.rooms.add(room)
        members = self._rooms.get(room)
        if members is None:
            members = self._rooms[room] = set()
            members.add(session_id)
            if self.on_room_opened is not None:
                await self.on_room_opened(room)
        else:
            members.add(session_id)
        return True

    async def leave(self, session_id: str, room: str) -> None:
        """Убрать сессию из комнаты."""
        session = self._sessions.get(session_id)
        if session is not None:
            session.rooms.discard(room)

        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(session_id)
        if not members:
            del self._rooms[room]
            if self.on_room_closed is not None:
                await self.on_room_closed(room)

    async def disconnect(self, session_id: str) -> None:
        """Удалить сессию и все её членства."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return

        for room in list(session.rooms):
            await self.leave(session_id, room)

    async def emit_to_room(self, room: str, event: str, payload: dict[str, Any]) -> int:
        """
        Отправить кадр всем участникам комнаты.
        Пустая комната — успешный no-op.

        Returns:
            Количество успешно отправленных кадров
        """
        members = self._rooms.get(room)
        if not members:
            return 0

        frame = {"event": event, "payload": payload}
        sessions = [s for s in (self._sessions.get(sid) for sid in list(members)) if s is not None]
        results = await asyncio.gather(*(self._send_frame(s, frame) for s in sessions))

        sent_count = 0
        for session, sent in zip(sessions, results):
            if sent is None:
                # Соединение разорвано
                await self.disconnect(session.session_id)
            elif sent:
                sent_count += 1
        self._total_messages_sent += sent_count
        return sent_count

    async def _send_frame(self, session: Session, frame: dict[str, Any]) -> Optional[bool]:
        """
        Отправка одной сессии с ограничением по времени.

        Returns:
            True - отправлено, False - таймаут (сессия остаётся), None - соединение разорвано
        """
        try:
            await asyncio.wait_for(session.websocket.send_json(frame), timeout=self._send_timeout)
            return True
        except asyncio.TimeoutError:
            await log_warning(f"Сессия {session.session_id}: отправка дольше {self._send_timeout} с, кадр пропущен")
            return False
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            await log_info(f"Сессия {session.session_id} недоступна: {e!r}", type_msg=TypeMsg.DEBUG)
            return None

    async def send_to_session(self, session_id: str, event: str, payload: dict[str, Any]) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        await session.websocket.send_json({"event": event, "payload": payload})
        self._total_messages_sent += 1
        return True

    def has_room(self, room: str) -> bool:
        return room in self._rooms

    def local_rooms(self) -> set[str]:
        return set(self._rooms)

    def get_room_members(self, room: str) -> set[str]:
        """Получить ID сессий в комнате."""
        return self._rooms.get(room, set()).copy()

    def get_session_rooms(self, session_id: str) -> set[str]:
        session = self._sessions.get(session_id)
        return session.rooms.copy() if session else set()

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._sessions),
            "total_rooms": len(self._rooms),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
        }
