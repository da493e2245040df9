# src/shared/rooms.py
"""
Ключи комнат realtime gateway.

Грамматика фиксирована: `user:<id>`, `restaurant:<id>`, `order:<id>`,
разделитель — двоеточие, регистр значим.
"""

from __future__ import annotations

from typing import NamedTuple

ROOM_KINDS = ("user", "restaurant", "order")


class RoomKey(NamedTuple):
    kind: str
    subject_id: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.subject_id}"


def user_room(user_id: str | int) -> str:
    return f"user:{user_id}"


def restaurant_room(restaurant_id: str | int) -> str:
    return f"restaurant:{restaurant_id}"


def order_room(order_id: str) -> str:
    return f"order:{order_id}"


def parse_room(room: str) -> RoomKey:
    """
    Разбирает ключ комнаты.

    Raises:
        ValueError: Неизвестный префикс или пустой идентификатор
    """
    kind, sep, subject_id = room.partition(":")
    if not sep or kind not in ROOM_KINDS or not subject_id or ":" in subject_id:
        raise ValueError(f"Некорректный ключ комнаты: {room!r}")
    return RoomKey(kind, subject_id)


def is_valid_room(room: str) -> bool:
    try:
        parse_room(room)
    except ValueError:
        return False
    return True
