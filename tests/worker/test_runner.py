# tests/worker/test_runner.py
"""
Тесты для запускалки воркеров.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from src.worker.matching import CourierMatchingWorker
from src.worker.payment import PaymentSettlementWorker
from src.worker.runner import WORKER_KINDS, build_workers


class TestBuildWorkers:

    def test_all_kinds(self, mock_db, mock_event_bus) -> None:
        with patch("src.worker.runner.get_db", return_value=mock_db), \
                patch("src.worker.runner.get_event_bus", return_value=mock_event_bus):
            workers = build_workers(WORKER_KINDS, MagicMock())

        assert [type(w) for w in workers] == [PaymentSettlementWorker, CourierMatchingWorker]
        assert all(w.event_bus is mock_event_bus for w in workers)

    def test_unknown_kind(self, mock_db, mock_event_bus) -> None:
        with patch("src.worker.runner.get_db", return_value=mock_db), \
                patch("src.worker.runner.get_event_bus", return_value=mock_event_bus):
            with pytest.raises(ValueError):
                build_workers(["billing"], MagicMock())
