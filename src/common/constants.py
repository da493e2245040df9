# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class OrderStatus(str, Enum):
    """Статусы заказа."""
    PLACED = "placed"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    RIDER_ASSIGNED = "rider_assigned"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    def __str__(self) -> str:
        return self.value


class PaymentStatus(str, Enum):
    """Статусы оплаты."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class AckDecision(str, Enum):
    """Решение консьюмера по сообщению из очереди."""
    ACK = "ack"                  # удалить навсегда
    REQUEUE = "requeue"          # nack с возвратом в очередь (временный сбой)
    RETRY_LATER = "retry_later"  # отложенный повтор с ограничением попыток
    DEAD_LETTER = "dead_letter"  # nack без возврата → DLQ


class RealtimeEvents:
    """Теги событий, отправляемых клиентам через gateway."""
    ORDER_AVAILABLE = "order:available"
    ORDER_NEW = "order:new"
    PAYMENT_CONFIRMED = "order:payment_confirmed"
    RIDER_ASSIGNED = "order:rider_assigned"
    STATUS_UPDATED = "order:status_updated"


# Заголовок счётчика отложенных повторов в AMQP-сообщении
RETRY_COUNT_HEADER = "x-retry-count"

# Код закрытия WebSocket при неуспешной авторизации
WS_CLOSE_UNAUTHORIZED = 4401
