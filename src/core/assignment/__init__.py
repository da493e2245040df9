# src/core/assignment/__init__.py
"""
Атомарное назначение курьера на заказ.
"""

from src.core.assignment.service import AcceptResult, AssignmentService

__all__ = ["AcceptResult", "AssignmentService"]
