# src/common/exceptions.py
"""
Таксономия ошибок ядра координации заказов.

- бизнес-ошибки (InvalidTransition, AssignmentConflict, NoCandidateFound)
  — терминальный результат, не повторяются;
- временные ошибки (StorageUnavailable, BrokerUnavailable) — повтор через
  повторную доставку брокером;
- DataIntegrityViolation, MalformedEnvelope — в dead-letter, нужен оператор;
- Unauthorized, Forbidden — отказ в соединении/запросе без повтора.
"""

from __future__ import annotations

from typing import Any


class DispatchError(Exception):
    """Базовая ошибка ядра."""
    pass


class InvalidTransition(DispatchError):
    """Переход статуса не следует сразу за текущим статусом заказа."""

    def __init__(self, order_id: str, current: Any, target: Any) -> None:
        self.order_id = order_id
        self.current = str(current) if current is not None else None
        self.target = str(target)
        super().__init__(
            f"Недопустимый переход заказа {order_id}: {self.current} -> {self.target}"
        )


class AssignmentConflict(DispatchError):
    """
    Заказ уже назначен другому курьеру.

    Протокол назначения не выбрасывает это исключение — конфликт
    возвращается вызывающему как обычный результат (AcceptResult).
    """

    def __init__(self, order_id: str, rider_id: str | None = None) -> None:
        self.order_id = order_id
        self.rider_id = rider_id
        super().__init__(f"Заказ {order_id} уже назначен")


class NoCandidateFound(DispatchError):
    """В радиусе нет доступных проверенных курьеров."""

    def __init__(self, order_id: str, radius_m: float) -> None:
        self.order_id = order_id
        self.radius_m = radius_m
        super().__init__(f"Нет курьеров в радиусе {radius_m:.0f} м для заказа {order_id}")


class Unauthorized(DispatchError):
    """Отсутствующий или невалидный bearer-токен."""
    pass


class Forbidden(DispatchError):
    """Неверный внутренний ключ или нет доступа к комнате."""
    pass


class StorageUnavailable(DispatchError):
    """Временная недоступность хранилища."""
    pass


class BrokerUnavailable(StorageUnavailable):
    """Нет соединения с брокером сообщений."""
    pass


class DataIntegrityViolation(DispatchError):
    """Сущность, на которую ссылается событие, отсутствует."""
    pass


class MalformedEnvelope(DispatchError):
    """Конверт события не прошёл валидацию схемы."""
    pass
