"""
Схемы событий для RabbitMQ.

Все события — конверты {type, data, timestamp}. Обработчики идемпотентны:
повторная доставка того же конверта не меняет результат.
"""

from src.shared.events.base import Envelope, EventTags
from src.shared.events.fulfillment_events import (
    OrderReadyData,
    OrderReadyForPickup,
    PaymentSuccess,
    PaymentSuccessData,
    parse_envelope,
)

__all__ = [
    "Envelope",
    "EventTags",
    "PaymentSuccess",
    "PaymentSuccessData",
    "OrderReadyForPickup",
    "OrderReadyData",
    "parse_envelope",
]
