# tests/core/test_order_expiry.py
"""
Тесты для операций истечения неоплаченных заказов.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.core.orders.expiry import OrderExpiry

NOW = datetime(2024, 1, 15, 12, 30, tzinfo=timezone.utc)


class TestOrderExpiry:

    @pytest.mark.asyncio
    async def test_find_expirable(self, mock_db) -> None:
        mock_db.fetch.return_value = [{"id": "o-1"}, {"id": "o-2"}]

        ids = await OrderExpiry(mock_db).find_expirable(NOW, limit=10)

        assert ids == ["o-1", "o-2"]
        args = mock_db.fetch.call_args.args
        assert args[1] == "pending"
        assert args[2] == NOW
        assert args[3] == ["placed", "payment_pending"]
        assert args[4] == 10

    @pytest.mark.asyncio
    async def test_mark_expired(self, mock_db) -> None:
        mock_db.fetchrow.return_value = {"id": "o-1"}

        assert await OrderExpiry(mock_db).mark_expired("o-1", NOW) is True

        query, *args = mock_db.fetchrow.call_args.args
        assert "expires_at = NULL" in query
        assert args[:4] == ["o-1", "expired", "failed", "pending"]

    @pytest.mark.asyncio
    async def test_paid_order_not_expired(self, mock_db) -> None:
        """Оплата пришла раньше sweeper: условие не выполняется."""
        mock_db.fetchrow.return_value = None

        assert await OrderExpiry(mock_db).mark_expired("o-1", NOW) is False
