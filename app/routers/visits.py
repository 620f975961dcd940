from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Query, Response, status

from app.deps import DbDep, SnapshotDep, StoreDep
from app.models.visit import Visit, VisitStatus, VisitType
from app.routers.errors import planning_http_error, store_http_error
from app.schemas.visit import (
    VisitCancelRequest,
    VisitCompleteRequest,
    VisitCreate,
    VisitMoveRequest,
    VisitMoveResponse,
    VisitMovementRead,
    VisitRead,
    VisitRescheduleRequest,
    VisitUpdate,
)
from app.services.activity_log_service import log_activity
from app.services.planning_errors import PlanningError
from app.services.visit_mutations import PlanningMutator, is_risky
from app.services.visit_query_service import apply_visit_filters
from app.services.visit_status_service import (
    cancel_visit,
    complete_visit,
    reschedule_visit,
    start_visit,
)
from app.services.visit_store import StoreResult


router = APIRouter()


def _unwrap(result: StoreResult) -> Visit:
    if not result.success:
        raise store_http_error(result)
    return result.data


@router.get("", response_model=list[VisitRead])
async def list_visits(
    store: StoreDep,
    branch_id: int | None = Query(None),
    contract_id: int | None = Query(None),
    start: date | None = Query(None, description="Earliest scheduled date"),
    end: date | None = Query(None, description="Latest scheduled date"),
    status_filter: VisitStatus | None = Query(None, alias="status"),
    type_filter: VisitType | None = Query(None, alias="type"),
    include_archived: bool = Query(False),
) -> list[Visit]:
    """List visits, optionally filtered by branch, contract, date range, status and type."""

    visits = _unwrap(await store.all_visits(include_archived=include_archived))
    return apply_visit_filters(
        visits,
        branch_id=branch_id,
        contract_id=contract_id,
        start=start,
        end=end,
        status=status_filter.value if status_filter else None,
        visit_type=type_filter.value if type_filter else None,
    )


@router.get("/{visit_id}", response_model=VisitRead)
async def get_visit(store: StoreDep, visit_id: int) -> Visit:
    return _unwrap(await store.get(visit_id))


@router.post("", response_model=VisitRead)
async def create_visit(db: DbDep, store: StoreDep, payload: VisitCreate) -> Visit:
    """Create a single visit.

    The branch must be covered by a service batch of the contract and the
    contract must not be archived.
    """

    visit = _unwrap(await store.create(payload))
    await log_activity(
        db,
        actor=payload.created_by,
        action="visit_created",
        target_type="visit",
        target_id=visit.id,
        details={"scheduled_date": visit.scheduled_date, "branch_id": visit.branch_id},
    )
    return visit


@router.put("/{visit_id}", response_model=VisitRead)
async def update_visit(
    db: DbDep, store: StoreDep, visit_id: int, payload: VisitUpdate
) -> Visit:
    patch = payload.model_dump(exclude_unset=True)
    visit = _unwrap(await store.update(visit_id, patch))
    await log_activity(
        db,
        actor=payload.updated_by,
        action="visit_updated",
        target_type="visit",
        target_id=visit_id,
        details={"fields": sorted(patch)},
    )
    return visit


@router.delete(
    "/{visit_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response
)
async def delete_visit(
    db: DbDep,
    store: StoreDep,
    visit_id: int,
    hard: bool = Query(False, description="Remove the row instead of archiving it"),
    confirm: bool = Query(False, description="Confirm deleting recorded field work"),
    actor: str | None = Query(None),
) -> Response:
    """Archive a visit, or remove it entirely with ``hard=true``.

    Completed, in-progress and emergency visits answer 409 unless
    ``confirm`` is set. Only scheduled visits can be removed with ``hard``.
    """

    visit = _unwrap(await store.get(visit_id))
    if is_risky(visit) and not confirm:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=(
                f"Visit {visit_id} is {visit.type} and {visit.status}; deleting it "
                "loses recorded field work. Confirm to continue."
            ),
        )
    if hard and visit.status != VisitStatus.SCHEDULED.value:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Only scheduled visits can be removed; visit {visit_id} is {visit.status}",
        )

    _unwrap(await store.delete(visit_id, hard=hard, actor=actor))
    await log_activity(
        db,
        actor=actor,
        action="visit_deleted" if hard else "visit_archived",
        target_type="visit",
        target_id=visit_id,
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{visit_id}/complete", response_model=VisitRead)
async def complete(
    db: DbDep, store: StoreDep, visit_id: int, payload: VisitCompleteRequest
) -> Visit:
    visit = _unwrap(
        await complete_visit(
            store,
            visit_id,
            payload.results.model_dump(),
            completed_date=payload.completed_date,
            actor=payload.actor,
        )
    )
    await log_activity(
        db,
        actor=payload.actor,
        action="visit_completed",
        target_type="visit",
        target_id=visit_id,
        details={"overall_status": payload.results.overall_status},
    )
    return visit


@router.post("/{visit_id}/cancel", response_model=VisitRead)
async def cancel(
    db: DbDep, store: StoreDep, visit_id: int, payload: VisitCancelRequest
) -> Visit:
    visit = _unwrap(
        await cancel_visit(store, visit_id, reason=payload.reason, actor=payload.actor)
    )
    await log_activity(
        db,
        actor=payload.actor,
        action="visit_cancelled",
        target_type="visit",
        target_id=visit_id,
        details={"reason": payload.reason} if payload.reason else None,
    )
    return visit


@router.post("/{visit_id}/reschedule", response_model=VisitRead)
async def reschedule(
    db: DbDep, store: StoreDep, visit_id: int, payload: VisitRescheduleRequest
) -> Visit:
    visit = _unwrap(
        await reschedule_visit(
            store,
            visit_id,
            payload.new_date,
            reason=payload.reason,
            actor=payload.actor,
        )
    )
    await log_activity(
        db,
        actor=payload.actor,
        action="visit_rescheduled",
        target_type="visit",
        target_id=visit_id,
        details={"new_date": payload.new_date, "reason": payload.reason},
    )
    return visit


@router.post("/{visit_id}/start", response_model=VisitRead)
async def start(
    db: DbDep,
    store: StoreDep,
    visit_id: int,
    actor: str | None = Query(None),
) -> Visit:
    visit = _unwrap(await start_visit(store, visit_id, actor=actor))
    await log_activity(
        db, actor=actor, action="visit_started", target_type="visit", target_id=visit_id
    )
    return visit


@router.post("/{visit_id}/move", response_model=VisitMoveResponse)
async def move(
    db: DbDep,
    store: StoreDep,
    snapshot: SnapshotDep,
    visit_id: int,
    payload: VisitMoveRequest,
) -> VisitMoveResponse:
    """Move a visit to another day of the grid.

    Full days answer 409; non-working days, moves too far from today and
    archived contracts answer 422.
    """

    mutator = PlanningMutator(store, snapshot.contracts, snapshot.branches)
    try:
        result = await mutator.move_visit(
            visit_id,
            target_date=payload.target_date,
            from_day=payload.from_day,
            to_day=payload.to_day,
            actor=payload.actor,
        )
    except PlanningError as exc:
        raise planning_http_error(exc) from exc

    movement = result.movement
    await log_activity(
        db,
        actor=payload.actor,
        action="visit_moved",
        target_type="visit",
        target_id=visit_id,
        details={
            "from_date": movement.from_date,
            "to_date": movement.to_date,
            "from_day": movement.from_day,
            "to_day": movement.to_day,
        },
    )
    return VisitMoveResponse(
        visit=VisitRead.model_validate(result.visit),
        movement=VisitMovementRead.model_validate(movement),
    )
