"""
HTTP-сервисы.

Сервисы:
- realtime_ws: WebSocket gateway, комнаты user/restaurant/order и внутренний /internal/emit
- courier_api: принятие заказов курьерами и обновление статуса доставки
"""

__all__: list[str] = []
