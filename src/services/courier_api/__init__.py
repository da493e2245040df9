# src/services/courier_api/__init__.py
"""
HTTP API курьеров: принятие заказа и обновление статуса доставки.
"""
