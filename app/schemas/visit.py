from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field

from app.models.visit import VisitStatus, VisitType
from app.services.visit_dates import standardize_date


def _normalize_visit_date(value: str) -> str:
    result = standardize_date(value)
    if not result.is_valid or result.standardized is None:
        raise ValueError("; ".join(result.warnings) or "invalid date")
    return result.standardized


# Accepts the import formats of standardize_date, stored as dd-Mmm-yyyy
VisitDateStr = Annotated[str, AfterValidator(_normalize_visit_date)]


class VisitServices(BaseModel):
    """Service flags copied from the originating service batch."""

    fire_extinguisher: bool = False
    alarm_system: bool = False
    fire_suppression: bool = False
    gas_system: bool = False
    foam_system: bool = False


class VisitResults(BaseModel):
    """Outcome recorded when a visit is completed.

    Args:
        overall_status: Inspection verdict.
        issues: Problems found on site.
        recommendations: Follow-up recommendations for the customer.
        next_visit_date: Optional suggested date for the next visit.
    """

    overall_status: Literal["passed", "failed", "partial"]
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    next_visit_date: VisitDateStr | None = None


class VisitBase(BaseModel):
    """Shared Visit fields used for create and read operations."""

    branch_id: int
    contract_id: int
    company_id: int | None = None
    type: VisitType = VisitType.REGULAR
    status: VisitStatus = VisitStatus.SCHEDULED
    scheduled_date: str
    completed_date: str | None = None
    results: VisitResults | None = None
    services: VisitServices | None = None
    notes: str | None = None


class VisitCreate(VisitBase):
    """Payload for creating a Visit.

    ``scheduled_date`` accepts the import formats handled by
    :func:`standardize_date` and is normalized to ``dd-Mmm-yyyy``.
    """

    scheduled_date: VisitDateStr
    completed_date: VisitDateStr | None = None
    created_by: str | None = None


class VisitRead(VisitBase):
    """Read model for a persisted visit."""

    id: int
    visit_code: str | None = None
    is_archived: bool = False
    scheduled_on: date | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class VisitDraftRead(BaseModel):
    """A visit proposed by the placement algorithm, not yet persisted."""

    branch_id: int
    contract_id: int
    company_id: int | None = None
    type: VisitType
    status: VisitStatus
    scheduled_date: str
    services: VisitServices | None = None
    created_by: str | None = None

    model_config = {"from_attributes": True}


class VisitUpdate(BaseModel):
    """Payload for updating a Visit.

    All fields are optional; only provided values will be persisted.
    ``status`` is not accepted here; it changes through the lifecycle
    endpoints (start, complete, cancel, reschedule).
    """

    type: VisitType | None = None
    scheduled_date: VisitDateStr | None = None
    completed_date: VisitDateStr | None = None
    results: VisitResults | None = None
    services: VisitServices | None = None
    notes: str | None = None
    updated_by: str | None = None

    model_config = {"extra": "forbid"}


class VisitCompleteRequest(BaseModel):
    """Payload for completing a visit.

    Args:
        results: Inspection results.
        completed_date: Optional completion date; defaults to today.
    """

    results: VisitResults
    completed_date: VisitDateStr | None = None
    actor: str | None = None


class VisitCancelRequest(BaseModel):
    """Payload for cancelling a visit.

    Args:
        reason: Optional explanation for the cancellation decision.
    """

    reason: str | None = None
    actor: str | None = None


class VisitRescheduleRequest(BaseModel):
    """Payload for rescheduling a visit to another date."""

    new_date: VisitDateStr
    reason: str | None = None
    actor: str | None = None


class VisitMoveRequest(BaseModel):
    """Drag-style move of a visit between days.

    Either ``target_date`` or both ``from_day`` and ``to_day`` (0-based
    columns of the weekly grid) must be provided.
    """

    target_date: VisitDateStr | None = None
    from_day: int | None = Field(default=None, ge=0, le=6)
    to_day: int | None = Field(default=None, ge=0, le=6)
    actor: str | None = None


class VisitMovementRead(BaseModel):
    """Audit record of a visit move."""

    visit_id: int
    from_date: str
    to_date: str
    from_day: int | None = None
    to_day: int | None = None
    actor: str | None = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class VisitMoveResponse(BaseModel):
    visit: VisitRead
    movement: VisitMovementRead
