from __future__ import annotations

from fastapi import HTTPException, status

from app.services.planning_errors import (
    CapacityConflict,
    NotFoundError,
    PersistenceError,
    PlanningError,
)
from app.services.visit_store import KIND_NOT_FOUND, KIND_PERSISTENCE, StoreResult


def store_http_error(result: StoreResult) -> HTTPException:
    """Map a failed store result onto an HTTP error."""

    if result.kind == KIND_NOT_FOUND:
        code = status.HTTP_404_NOT_FOUND
    elif result.kind == KIND_PERSISTENCE:
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=result.error)


def planning_http_error(exc: PlanningError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, PersistenceError):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif isinstance(exc, CapacityConflict):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=str(exc))
