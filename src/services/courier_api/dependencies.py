# src/services/courier_api/dependencies.py
"""
Dependency Injection для Courier API.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request

from src.common.exceptions import Unauthorized
from src.core.assignment.service import AssignmentService
from src.shared.auth import Identity, bearer_token, verify_token


def get_assignment_service(request: Request) -> AssignmentService:
    """Получить сервис назначения."""
    service = getattr(request.app.state, "assignment", None)
    if service is None:
        raise RuntimeError("AssignmentService не инициализирован")
    return service


def get_current_courier(
    request: Request,
    authorization: Annotated[Optional[str], Header()] = None,
) -> Identity:
    """Курьер из bearer-токена. ID курьера совпадает с ID пользователя."""
    auth = request.app.state.auth
    try:
        return verify_token(bearer_token(authorization), auth.get("secret"), auth.get("algorithm"))
    except Unauthorized as e:
        raise HTTPException(
            status_code=401,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


CurrentCourier = Annotated[Identity, Depends(get_current_courier)]
Assignment = Annotated[AssignmentService, Depends(get_assignment_service)]
