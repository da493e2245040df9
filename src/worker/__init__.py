# src/worker/__init__.py
"""
Консьюмеры очередей RabbitMQ.
"""

from src.worker.base import BaseWorker
from src.worker.matching import CourierMatchingWorker
from src.worker.payment import PaymentSettlementWorker

__all__ = ["BaseWorker", "CourierMatchingWorker", "PaymentSettlementWorker"]
