# src/core/notifications/gateway_client.py
"""
Клиент внутреннего endpoint realtime gateway (POST /internal/emit).

Отправка fire-and-forget с ограниченным таймаутом: недоступность gateway
не должна блокировать консьюмеров, поэтому emit() не выбрасывает
сетевые ошибки, а возвращает False.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from src.common.constants import TypeMsg
from src.common.logger import log_info


class GatewayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        internal_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if base_url is None or internal_key is None or timeout is None:
            from src.config import settings
            base_url = base_url or settings.realtime.GATEWAY_URL
            internal_key = internal_key if internal_key is not None else settings.realtime.INTERNAL_SERVICE_KEY
            timeout = timeout or settings.realtime.GATEWAY_TIMEOUT_SECONDS

        self.base_url = base_url
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"x-internal-key": internal_key},
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> bool:
        """
        Публикует событие в комнату.

        Returns:
            True, если gateway принял событие
        """
        try:
            response = await self.client.post(
                "/internal/emit",
                json={"room": room, "event": event, "payload": payload},
            )
        except httpx.HTTPError as e:
            await log_info(f"Gateway недоступен ({event} → {room}): {e!r}", type_msg=TypeMsg.WARNING)
            return False

        if response.status_code != 200:
            await log_info(
                f"Gateway отклонил {event} → {room}: {response.status_code} {response.text[:200]}",
                type_msg=TypeMsg.WARNING,
            )
            return False
        return True

    async def emit_many(self, targets: list[tuple[str, str, dict[str, Any]]]) -> list[bool]:
        """Параллельно отправляет (room, event, payload); результат в порядке targets."""
        if not targets:
            return []
        return list(await asyncio.gather(*(self.emit(room, event, payload) for room, event, payload in targets)))
