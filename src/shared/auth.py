# src/shared/auth.py
"""
Проверка bearer-токенов, выпущенных сервисом идентификации.

Токен — JWT, подписанный общим секретом; полезная нагрузка:
    {"user": {"_id": "...", "restaurantId": "...", "role": "..."}, "exp": ...}
Выпуск токенов вне этого проекта, здесь только локальная проверка подписи.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from jose import JWTError, jwt

from src.common.exceptions import Unauthorized
from src.shared.rooms import restaurant_room, user_room


@dataclass(frozen=True)
class Identity:
    """Проверенная личность из токена."""
    user_id: str
    restaurant_id: Optional[str] = None
    role: Optional[str] = None

    def default_rooms(self) -> list[str]:
        """Комнаты, в которые сессия входит сразу после handshake."""
        rooms = [user_room(self.user_id)]
        if self.restaurant_id:
            rooms.append(restaurant_room(self.restaurant_id))
        return rooms


def _extract_identity(claims: dict[str, Any]) -> Identity:
    user = claims.get("user")
    if not isinstance(user, dict):
        raise Unauthorized("В токене нет claim user")

    user_id = user.get("_id") or user.get("id")
    if not user_id:
        raise Unauthorized("В токене нет ID пользователя")

    restaurant_id = user.get("restaurantId")
    return Identity(
        user_id=str(user_id),
        restaurant_id=str(restaurant_id) if restaurant_id else None,
        role=user.get("role"),
    )


def verify_token(token: Optional[str], secret: Optional[str] = None, algorithm: Optional[str] = None) -> Identity:
    """
    Проверяет подпись и срок действия токена.

    Raises:
        Unauthorized: Токен отсутствует, подпись неверна, токен истёк
            или в нём нет ID пользователя
    """
    if not token:
        raise Unauthorized("Токен не передан")

    if secret is None or algorithm is None:
        from src.config import settings
        secret = secret or settings.auth.JWT_SECRET
        algorithm = algorithm or settings.auth.JWT_ALGORITHM

    if not secret:
        raise Unauthorized("Секрет проверки токенов не настроен")

    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise Unauthorized(f"Невалидный токен: {e}") from e

    return _extract_identity(claims)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Достаёт токен из заголовка Authorization: Bearer <token>."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
