from __future__ import annotations

import uuid

from fastapi import APIRouter, HTTPException, Query, status

from app.deps import DbDep, SnapshotDep, StoreDep
from app.routers.errors import planning_http_error, store_http_error
from app.schemas.planning import (
    AnnualGridRead,
    AutomatedPlanningRequest,
    BulkDeleteRead,
    BulkDeleteRequest,
    BulkPlanRead,
    BulkPlanRequest,
    CellActionRead,
    CellClickRequest,
    CommitReportRead,
    DayColumnRead,
    GridSummaryRead,
    PlanningResultRead,
    PlanningSummaryRead,
    VisitConflictRead,
    WeekDataRead,
    WeekGridRead,
    WeekStatusRead,
)
from app.schemas.visit import VisitDraftRead
from app.services.activity_log_service import log_activity
from app.services.grid_projection import (
    WeekData,
    build_annual_grid,
    project_week,
    project_week_days,
    summarize_grid,
    week_status_overview,
)
from app.services.planning_errors import PlanningError
from app.services.visit_dates import week_bounds
from app.services.visit_mutations import (
    ACTION_CONFIRMATION_REQUIRED,
    ACTION_FAILED,
    PlanningMutator,
    commit_planned_visits,
)
from app.services.visit_placement import VisitPlanningAlgorithm
from core.settings import get_settings


router = APIRouter()


async def _all_visits(store):
    result = await store.all_visits()
    if not result.success:
        raise store_http_error(result)
    return result.data or []


@router.post("/automated", response_model=PlanningResultRead)
async def run_automated_planning(
    db: DbDep,
    store: StoreDep,
    snapshot: SnapshotDep,
    payload: AutomatedPlanningRequest,
) -> PlanningResultRead:
    """Plan the missing visits of the selected branches for one year.

    With ``commit`` the drafts are written in batches of
    ``options.batch_size``; a failing batch does not undo earlier ones and
    is reported in ``commit.errors``.
    """

    branches = snapshot.branches_for(payload.company_id, payload.branch_ids)
    existing = await _all_visits(store)
    algorithm = VisitPlanningAlgorithm(payload.options)
    result = algorithm.plan(branches, snapshot.contracts, existing, today=payload.today)

    report = None
    if payload.commit and result.planned_visits:
        report = await commit_planned_visits(
            store, result.planned_visits, payload.options.batch_size
        )

    await log_activity(
        db,
        actor=None,
        action="planning_automated_run",
        target_type="planning",
        details={
            "branch_ids": [b.id for b in branches],
            "total_planned": result.summary.total_planned,
            "total_conflicts": result.summary.total_conflicts,
            "total_skipped": result.summary.total_skipped,
            "errors": result.errors,
            "committed": report.committed if report else 0,
            "visit_ids": report.visit_ids if report else [],
        },
        batch_id=str(uuid.uuid4()),
    )

    return PlanningResultRead(
        success=result.success and (report is None or report.failed == 0),
        planned_visits=[VisitDraftRead.model_validate(d) for d in result.planned_visits],
        conflicts=[VisitConflictRead.model_validate(c) for c in result.conflicts],
        summary=PlanningSummaryRead.model_validate(result.summary),
        errors=result.errors + (report.errors if report else []),
        commit=CommitReportRead.model_validate(report) if report else None,
    )


@router.get("/annual", response_model=AnnualGridRead)
async def get_annual_grid(
    store: StoreDep,
    snapshot: SnapshotDep,
    year: int = Query(..., ge=2000, le=2099),
    company_id: int | None = Query(None),
) -> AnnualGridRead:
    """Return the 52-week grid of a year with the slot counters."""

    branches = snapshot.branches_for(company_id)
    weeks = build_annual_grid(branches, await _all_visits(store), year)
    return AnnualGridRead(
        year=year,
        weeks=[WeekDataRead.model_validate(w) for w in weeks],
        summary=GridSummaryRead.model_validate(summarize_grid(weeks)),
    )


@router.get("/week", response_model=WeekGridRead)
async def get_week(
    store: StoreDep,
    snapshot: SnapshotDep,
    year: int = Query(..., ge=2000, le=2099),
    week: int = Query(..., ge=1, le=52),
    company_id: int | None = Query(None),
) -> WeekGridRead:
    start, end = week_bounds(year, week)
    result = await store.visits_in_range(start, end)
    if not result.success:
        raise store_http_error(result)
    visits = result.data or []
    cells = project_week(snapshot.branches_for(company_id), visits, start, end)
    return WeekGridRead(
        week=WeekDataRead.model_validate(
            WeekData(week_number=week, start_date=start, end_date=end, branches=cells)
        ),
        overview=WeekStatusRead.model_validate(week_status_overview(visits, week, year)),
    )


@router.get("/week/days", response_model=list[DayColumnRead])
async def get_week_days(
    store: StoreDep,
    snapshot: SnapshotDep,
    year: int = Query(..., ge=2000, le=2099),
    week: int = Query(..., ge=1, le=52),
    company_id: int | None = Query(None),
) -> list[DayColumnRead]:
    """Return the seven day columns of a week with per-day availability."""

    settings = get_settings()
    start, end = week_bounds(year, week)
    result = await store.visits_in_range(start, end)
    if not result.success:
        raise store_http_error(result)
    columns = project_week_days(
        snapshot.branches_for(company_id),
        result.data or [],
        start,
        max_visits=settings.planning_max_visits_per_day,
        non_working_weekdays=settings.planning_non_working_weekdays,
    )
    return [DayColumnRead.model_validate(c) for c in columns]


@router.post("/cell", response_model=CellActionRead)
async def click_cell(
    db: DbDep,
    store: StoreDep,
    snapshot: SnapshotDep,
    payload: CellClickRequest,
) -> CellActionRead:
    """Toggle one (branch, week) cell.

    Cells with completed, in-progress or emergency visits answer 409 until
    the request is repeated with ``confirm=true``.
    """

    mutator = PlanningMutator(store, snapshot.contracts, snapshot.branches)
    try:
        result = await mutator.click_cell(
            payload.branch_id,
            payload.year,
            payload.week_number,
            confirm=payload.confirm,
            actor=payload.actor,
        )
    except PlanningError as exc:
        raise planning_http_error(exc) from exc

    if result.action == ACTION_CONFIRMATION_REQUIRED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.warning)
    if result.action == ACTION_FAILED:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.error
        )

    await log_activity(
        db,
        actor=payload.actor,
        action=f"planning_cell_{result.action}",
        target_type="branch",
        target_id=payload.branch_id,
        details={
            "year": payload.year,
            "week": payload.week_number,
            "status": result.cell.status.value,
        },
    )
    return CellActionRead.model_validate(result)


@router.post("/bulk-plan", response_model=BulkPlanRead)
async def bulk_plan_week(
    db: DbDep,
    store: StoreDep,
    snapshot: SnapshotDep,
    payload: BulkPlanRequest,
) -> BulkPlanRead:
    """Plan one visit for every empty cell of the week."""

    mutator = PlanningMutator(
        store, snapshot.contracts, snapshot.branches, options=payload.options
    )
    try:
        result = await mutator.plan_week(
            payload.year,
            payload.week_number,
            branch_ids=payload.branch_ids,
            actor=payload.actor,
        )
    except PlanningError as exc:
        raise planning_http_error(exc) from exc

    await log_activity(
        db,
        actor=payload.actor,
        action="planning_week_bulk_planned",
        target_type="planning_week",
        target_id=payload.week_number,
        details={
            "year": payload.year,
            "planned_visit_ids": result.planned_visit_ids,
            "failed_branch_ids": [f.branch_id for f in result.failed_branches],
        },
    )
    return BulkPlanRead.model_validate(result)


@router.post("/bulk-delete", response_model=BulkDeleteRead)
async def bulk_delete_visits(
    db: DbDep,
    store: StoreDep,
    snapshot: SnapshotDep,
    payload: BulkDeleteRequest,
) -> BulkDeleteRead:
    """Delete a selection of visits.

    Answers 409 with a warning when the selection holds completed,
    in-progress or emergency visits and ``confirm`` is not set.
    """

    mutator = PlanningMutator(store, snapshot.contracts, snapshot.branches)
    result = await mutator.delete_visits(
        payload.visit_ids, confirm=payload.confirm, hard=payload.hard, actor=payload.actor
    )
    if result.confirmation_required:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.warning)

    await log_activity(
        db,
        actor=payload.actor,
        action="planning_bulk_deleted",
        target_type="visit",
        details={
            "visit_ids": payload.visit_ids,
            "deleted_count": result.deleted_count,
            "failed_ids": result.failed_ids,
            "hard": payload.hard,
        },
        batch_id=str(uuid.uuid4()),
    )
    return BulkDeleteRead.model_validate(result)
