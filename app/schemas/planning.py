from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from app.schemas.visit import VisitDraftRead, VisitRead
from app.services.grid_projection import CellStatus

ConflictResolution = Literal["reschedule", "skip", "error"]
WeekStart = Literal["saturday", "sunday"]


class PlanningOptions(BaseModel):
    """Options controlling one run of the placement algorithm.

    Unknown fields are rejected so that a typo in a client payload does not
    silently fall back to a default.

    Args:
        max_visits_per_day: Visits allowed on one calendar day across all
            branches, existing and newly planned together.
        preferred_week_start: Weekday the first visit of a window is aligned to.
        min_days_between_visits: Minimum distance to the nearest other visit
            of the same branch.
        include_existing_visits: Count scheduled visits already in the store
            toward the branch requirement.
        conflict_resolution: What to do when a date violates capacity or
            spacing.
        batch_size: Number of visits persisted per write batch.
        reschedule_window_days: Maximum shift in days when rescheduling.
        include_emergency_visits: Also distribute emergency visits.
        random_seed: Seed for the emergency distribution.
        year: Planning year; defaults to the reference date's year.
    """

    max_visits_per_day: int = Field(default=5, ge=1, le=10)
    preferred_week_start: WeekStart = "saturday"
    min_days_between_visits: int = Field(default=1, ge=1, le=7)
    include_existing_visits: bool = True
    conflict_resolution: ConflictResolution = "reschedule"
    batch_size: int = Field(default=50, ge=1, le=500)
    reschedule_window_days: int = Field(default=14, ge=1, le=30)
    include_emergency_visits: bool = False
    random_seed: int | None = None
    year: int | None = Field(default=None, ge=2000, le=2099)

    model_config = {"extra": "forbid"}


class VisitConflictRead(BaseModel):
    branch_id: int
    contract_id: int | None = None
    original_date: date
    resolved_date: date | None = None
    resolution: str
    existing_visits: int = 0
    max_daily_visits: int
    reason: str
    alternative_dates: list[date] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class PlanningSummaryRead(BaseModel):
    total_planned: int
    total_conflicts: int
    total_skipped: int
    planning_time: float

    model_config = {"from_attributes": True}


class CommitReportRead(BaseModel):
    """Outcome of persisting a planning run in batches.

    Earlier batches stay committed when a later batch fails.
    """

    committed: int
    failed: int
    batches: int
    errors: list[str] = Field(default_factory=list)
    visit_ids: list[int] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class PlanningResultRead(BaseModel):
    success: bool
    planned_visits: list[VisitDraftRead]
    conflicts: list[VisitConflictRead]
    summary: PlanningSummaryRead
    errors: list[str] = Field(default_factory=list)
    commit: CommitReportRead | None = None


class AutomatedPlanningRequest(BaseModel):
    """Run the placement algorithm for a set of branches.

    Args:
        company_id: Restrict to branches of this company.
        branch_ids: Restrict to these branches; all active branches when empty.
        options: Algorithm options.
        commit: Persist the planned visits in batches after planning.
        today: Reference date; defaults to the server date.
    """

    company_id: int | None = None
    branch_ids: list[int] | None = None
    options: PlanningOptions = Field(default_factory=PlanningOptions)
    commit: bool = False
    today: date | None = None


class GridCellRead(BaseModel):
    branch_id: int
    branch_code: str | None = None
    branch_name: str | None = None
    status: CellStatus
    visits: list[VisitRead]

    model_config = {"from_attributes": True}


class WeekDataRead(BaseModel):
    week_number: int
    start_date: date
    end_date: date
    branches: list[GridCellRead]

    model_config = {"from_attributes": True}


class DayColumnRead(BaseModel):
    day_index: int
    day: date
    weekday: str
    is_working_day: bool
    visit_count: int
    max_visits: int
    is_available: bool
    branches: list[GridCellRead]

    model_config = {"from_attributes": True}


class GridSummaryRead(BaseModel):
    total_slots: int
    planned_slots: int
    completed_slots: int
    partial_slots: int
    emergency_slots: int
    planning_percentage: int
    completion_percentage: int

    model_config = {"from_attributes": True}


class AnnualGridRead(BaseModel):
    year: int
    weeks: list[WeekDataRead]
    summary: GridSummaryRead


class WeekStatusRead(BaseModel):
    week_number: int
    year: int
    total_visits: int
    completed_visits: int
    pending_visits: int
    emergency_visits: int
    completion_rate: int

    model_config = {"from_attributes": True}


class WeekGridRead(BaseModel):
    week: WeekDataRead
    overview: WeekStatusRead


class CellClickRequest(BaseModel):
    branch_id: int
    year: int
    week_number: int = Field(ge=1, le=52)
    confirm: bool = False
    actor: str | None = None


class CellActionRead(BaseModel):
    """Outcome of a single-cell click.

    ``action`` is one of ``planned``, ``deleted``, ``archived``,
    ``confirmation_required`` or ``failed``.
    """

    action: str
    cell: GridCellRead
    warning: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class BulkPlanRequest(BaseModel):
    year: int
    week_number: int = Field(ge=1, le=52)
    branch_ids: list[int] | None = None
    options: PlanningOptions | None = None
    actor: str | None = None


class FailedBranchRead(BaseModel):
    branch_id: int
    reason: str

    model_config = {"from_attributes": True}


class BulkPlanRead(BaseModel):
    success_count: int
    failed_branches: list[FailedBranchRead]
    conflicts: list[VisitConflictRead]
    planned_visit_ids: list[int]

    model_config = {"from_attributes": True}


class BulkDeleteRequest(BaseModel):
    visit_ids: list[int] = Field(min_length=1)
    confirm: bool = False
    hard: bool = False
    actor: str | None = None


class BulkDeleteRead(BaseModel):
    requested: int
    deleted_count: int
    failed_ids: list[int]
    warning: str | None = None
    confirmation_required: bool = False

    model_config = {"from_attributes": True}
