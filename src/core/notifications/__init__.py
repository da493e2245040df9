# src/core/notifications/__init__.py
"""
Доставка push-уведомлений через realtime gateway.
"""

from src.core.notifications.gateway_client import GatewayClient

__all__ = ["GatewayClient"]
