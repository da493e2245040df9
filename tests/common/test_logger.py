# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from src.common.constants import TypeMsg
from src.common.logger import ColoredFormatter, JsonFormatter, get_logger, log_info


def _record(level: int = logging.INFO, msg: str = "Test message") -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


class TestJsonFormatter:

    def test_format_basic_record(self) -> None:
        data = json.loads(JsonFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["line"] == 10

    def test_format_with_extra_data(self) -> None:
        record = _record(logging.WARNING)
        record.extra_data = {"order_id": "o-1"}

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"order_id": "o-1"}

    def test_cyrillic_not_escaped(self) -> None:
        assert "Заказ оплачен" in JsonFormatter().format(_record(msg="Заказ оплачен"))


class TestColoredFormatter:

    def test_contains_level_and_message(self) -> None:
        result = ColoredFormatter().format(_record(logging.ERROR, "boom"))

        assert "ERROR" in result
        assert "boom" in result


class TestGetLogger:

    def test_cached(self) -> None:
        assert get_logger("test_cached_logger") is get_logger("test_cached_logger")

    def test_does_not_propagate(self) -> None:
        assert get_logger("test_propagate_logger").propagate is False


class TestLogInfo:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("type_msg,method", [
        (TypeMsg.DEBUG, "debug"),
        (TypeMsg.INFO, "info"),
        (TypeMsg.WARNING, "warning"),
        (TypeMsg.ERROR, "error"),
        (TypeMsg.CRITICAL, "critical"),
    ])
    async def test_level_dispatch(self, type_msg: TypeMsg, method: str) -> None:
        logger = get_logger("test_dispatch_logger")

        with patch.object(logger, method) as mocked:
            await log_info("message", type_msg=type_msg, logger_name="test_dispatch_logger")

        mocked.assert_called_once()
        extra = mocked.call_args.kwargs["extra"]["extra_data"]
        assert extra["caller_function"] == "test_level_dispatch"
