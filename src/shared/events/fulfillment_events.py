# src/shared/events/fulfillment_events.py
"""
Типизированные конверты событий выполнения заказа.

Разбор выполняется по тегу `type` (tagged union): неизвестный тег или
невалидные данные отклоняются до бизнес-логики.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from src.common.exceptions import MalformedEnvelope
from src.shared.events.base import Envelope, EventTags
from src.shared.models.location import GeoPoint


class PaymentSuccessData(BaseModel):
    """Данные PAYMENT_SUCCESS."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)
    # paymentId: имя поля у платёжного сервиса
    payment_reference: str = Field(
        validation_alias=AliasChoices("paymentReference", "paymentId", "payment_reference"),
        serialization_alias="paymentReference",
        min_length=1,
    )
    provider: str | None = None


class OrderReadyData(BaseModel):
    """Данные ORDER_READY_FOR_PICKUP."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)
    pickup_location: GeoPoint = Field(
        validation_alias=AliasChoices("pickupLocation", "location", "pickup_location"),
        serialization_alias="pickupLocation",
    )
    restaurant_id: str | None = Field(default=None, alias="restaurantId")


class PaymentSuccess(Envelope):
    """Событие: платёж подтверждён платёжным сервисом."""

    type: Literal["PAYMENT_SUCCESS"] = EventTags.PAYMENT_SUCCESS
    data: PaymentSuccessData


class OrderReadyForPickup(Envelope):
    """Событие: ресторан отметил заказ готовым к выдаче курьеру."""

    type: Literal["ORDER_READY_FOR_PICKUP", "ORDER_READY_FOR_RIDER"] = EventTags.ORDER_READY_FOR_PICKUP
    data: OrderReadyData


FulfillmentEnvelope = Annotated[
    Union[PaymentSuccess, OrderReadyForPickup],
    Field(discriminator="type"),
]

_envelope_adapter: TypeAdapter[PaymentSuccess | OrderReadyForPickup] = TypeAdapter(FulfillmentEnvelope)


def parse_envelope(raw: bytes | str) -> PaymentSuccess | OrderReadyForPickup:
    """
    Разбирает и валидирует конверт по его тегу.

    Raises:
        MalformedEnvelope: Невалидный JSON, неизвестный тег или данные не по схеме
    """
    try:
        return _envelope_adapter.validate_json(raw)
    except ValidationError as e:
        raise MalformedEnvelope(f"Конверт не прошёл валидацию: {e.error_count()} ошибок: {e.errors()[:3]}") from e
