# src/core/__init__.py
"""
Доменный слой (Core Domain).

- orders: хранилище заказов и машина состояний
- couriers: поиск доступных курьеров в радиусе
- assignment: протокол назначения курьера
- notifications: клиент realtime gateway
"""

__all__: list[str] = []
