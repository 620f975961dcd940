"""Interactive and bulk mutations of the planning grid.

Every mutation awaits its store write and then re-reads the store before
deriving cell state, so a returned cell always reflects the write.

Cell state machine per (branch, week):

* ``none`` + click → one scheduled regular visit on the first working day
  of the week.
* ``planned`` (all visits scheduled) + click → the scheduled visit is
  deleted without confirmation.
* any other status + click → confirmation required; once confirmed the
  first non-scheduled visit is archived.

Bulk writes are not all-or-nothing across batches: a failed batch is
reported and earlier batches stay committed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Sequence

from app.core.logging import logger
from app.models.visit import VisitStatus, VisitType
from app.schemas.planning import PlanningOptions
from app.services.contract_requirements import (
    batch_services,
    contract_year_window,
    first_matching_batch,
)
from app.services.grid_projection import (
    WEEKDAY_NAMES,
    CellStatus,
    GridCell,
    project_week,
)
from app.services.planning_errors import (
    CapacityConflict,
    NotFoundError,
    PersistenceError,
    PlanningRunError,
    UnparseableDate,
    ValidationError,
)
from app.services.visit_dates import (
    format_visit_date,
    next_working_day,
    parse_visit_date,
    scheduled_on,
    week_bounds,
)
from app.services.visit_placement import (
    PLANNER_ACTOR,
    PlacementRun,
    VisitConflict,
    occupies_calendar,
)
from app.services.visit_store import (
    KIND_NOT_FOUND,
    KIND_PERSISTENCE,
    StoreResult,
    VisitDraft,
    VisitStore,
)
from core.settings import Settings, get_settings

ACTION_PLANNED = "planned"
ACTION_DELETED = "deleted"
ACTION_ARCHIVED = "archived"
ACTION_CONFIRMATION_REQUIRED = "confirmation_required"
ACTION_FAILED = "failed"

_RISKY_STATUSES = {VisitStatus.COMPLETED.value, VisitStatus.IN_PROGRESS.value}


@dataclass
class CommitReport:
    committed: int = 0
    failed: int = 0
    batches: int = 0
    errors: list[str] = field(default_factory=list)
    visit_ids: list[int] = field(default_factory=list)


@dataclass
class CellActionResult:
    action: str
    cell: GridCell
    warning: str | None = None
    error: str | None = None


@dataclass
class FailedBranch:
    branch_id: int
    reason: str


@dataclass
class BulkPlanResult:
    success_count: int = 0
    failed_branches: list[FailedBranch] = field(default_factory=list)
    conflicts: list[VisitConflict] = field(default_factory=list)
    planned_visit_ids: list[int] = field(default_factory=list)


@dataclass
class BulkDeleteResult:
    requested: int
    deleted_count: int = 0
    failed_ids: list[int] = field(default_factory=list)
    warning: str | None = None
    confirmation_required: bool = False


@dataclass
class VisitMovement:
    """Audit record of a drag-style move between days."""

    visit_id: int
    from_date: str
    to_date: str
    from_day: int | None
    to_day: int | None
    actor: str | None
    timestamp: datetime


@dataclass
class MoveResult:
    visit: Any
    movement: VisitMovement


def is_risky(visit: Any) -> bool:
    """Deleting this visit would destroy recorded field work."""

    return visit.status in _RISKY_STATUSES or visit.type == VisitType.EMERGENCY.value


def raise_for_result(result: StoreResult) -> None:
    """Translate a failed store result into the matching planning error."""

    if result.success:
        return
    message = result.error or "visit store operation failed"
    if result.kind == KIND_PERSISTENCE:
        raise PersistenceError(message)
    if result.kind == KIND_NOT_FOUND:
        raise NotFoundError(message)
    raise ValidationError(message)


async def commit_planned_visits(
    store: VisitStore,
    drafts: Sequence[VisitDraft],
    batch_size: int,
    delay_seconds: float | None = None,
) -> CommitReport:
    """Persist drafts in fixed-size batches, awaited one after another.

    A pause of ``delay_seconds`` (default ``planning_batch_delay_seconds``)
    separates consecutive batches. A failing batch is recorded and the
    remaining batches are still written; nothing already committed is
    rolled back.
    """

    if delay_seconds is None:
        delay_seconds = get_settings().planning_batch_delay_seconds
    report = CommitReport()

    for index, offset in enumerate(range(0, len(drafts), batch_size)):
        if index and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        chunk = list(drafts[offset : offset + batch_size])
        report.batches += 1
        result = await store.create_many(chunk)
        if result.success:
            report.committed += len(chunk)
            report.visit_ids.extend(v.id for v in result.data or [])
            continue
        report.failed += len(chunk)
        report.errors.append(f"Batch {index + 1}: {result.error}")
        logger.warning(
            "Planned visit batch %s (%s visits) failed: %s",
            index + 1,
            len(chunk),
            result.error,
        )

    logger.info(
        "Committed %s of %s planned visits in %s batch(es)",
        report.committed,
        len(drafts),
        report.batches,
    )
    return report


class PlanningMutator:
    """Applies grid actions against a visit store.

    Args:
        store: Visit store to read from and write to.
        contracts: Contracts with service batches and branches loaded.
        branches: Branches shown on the grid, in display order.
        options: Placement options for bulk planning and the day capacity.
        settings: Application settings; defaults to :func:`get_settings`.
        today: Reference date for move limits; defaults to ``date.today()``.
    """

    def __init__(
        self,
        store: VisitStore,
        contracts: Iterable[Any],
        branches: Iterable[Any],
        options: PlanningOptions | None = None,
        settings: Settings | None = None,
        today: date | None = None,
    ) -> None:
        self.store = store
        self.contracts = list(contracts)
        self.branches = [b for b in branches if not getattr(b, "is_archived", False)]
        self.settings = settings or get_settings()
        self.options = options or PlanningOptions(
            max_visits_per_day=self.settings.planning_max_visits_per_day
        )
        self.today = today

    def _today(self) -> date:
        return self.today or date.today()

    def _branch(self, branch_id: int) -> Any:
        for b in self.branches:
            if b.id == branch_id:
                return b
        raise NotFoundError(f"Branch {branch_id} not found")

    def _contract(self, contract_id: int) -> Any | None:
        for c in self.contracts:
            if c.id == contract_id:
                return c
        return None

    @staticmethod
    def _week(year: int, week_number: int) -> tuple[date, date]:
        try:
            return week_bounds(year, week_number)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

    def _first_working_day(self, value: date) -> date:
        return next_working_day(value, self.settings.planning_non_working_weekdays)

    async def _read_cell(self, branch: Any, start: date, end: date) -> GridCell:
        result = await self.store.visits_in_range(start, end)
        raise_for_result(result)
        return project_week([branch], result.data or [], start, end)[0]

    async def click_cell(
        self,
        branch_id: int,
        year: int,
        week_number: int,
        confirm: bool = False,
        actor: str | None = None,
    ) -> CellActionResult:
        """Toggle a (branch, week) cell following the cell state machine.

        Raises:
            NotFoundError: Unknown branch.
            ValidationError: Week number outside 1..52.
            PersistenceError: The store could not be read or written; the
                cell is left unchanged.
        """

        branch = self._branch(branch_id)
        start, end = self._week(year, week_number)
        cell = await self._read_cell(branch, start, end)

        if cell.status == CellStatus.NONE:
            day = self._first_working_day(start)
            match = first_matching_batch(self.contracts, branch_id, on=day)
            if match is None:
                return CellActionResult(
                    action=ACTION_FAILED,
                    cell=cell,
                    error=f"Branch {branch_id} is not covered by any active contract",
                )
            result = await self.store.create(
                VisitDraft(
                    branch_id=branch_id,
                    contract_id=match.contract.id,
                    company_id=getattr(match.contract, "company_id", None),
                    scheduled_date=format_visit_date(day),
                    services=batch_services(match.batch),
                    created_by=actor,
                )
            )
            action = ACTION_PLANNED
        elif cell.status == CellStatus.PLANNED and all(
            v.status == VisitStatus.SCHEDULED.value for v in cell.visits
        ):
            result = await self.store.delete(cell.visits[0].id, hard=True, actor=actor)
            action = ACTION_DELETED
        else:
            if not confirm:
                return CellActionResult(
                    action=ACTION_CONFIRMATION_REQUIRED,
                    cell=cell,
                    warning=(
                        f"Week {week_number} of branch {branch_id} holds "
                        f"{len(cell.visits)} visit(s) with recorded work "
                        f"(status {cell.status.value}); confirm to delete."
                    ),
                )
            target = next(
                (v for v in cell.visits if v.status != VisitStatus.SCHEDULED.value),
                cell.visits[0],
            )
            result = await self.store.delete(target.id, hard=False, actor=actor)
            action = ACTION_ARCHIVED

        if not result.success:
            if result.kind == KIND_PERSISTENCE:
                raise PersistenceError(result.error or "visit store write failed")
            return CellActionResult(action=ACTION_FAILED, cell=cell, error=result.error)

        logger.info(
            "Cell branch=%s week=%s/%s: %s -> %s",
            branch_id,
            week_number,
            year,
            cell.status.value,
            action,
        )
        return CellActionResult(action=action, cell=await self._read_cell(branch, start, end))

    async def plan_week(
        self,
        year: int,
        week_number: int,
        branch_ids: Iterable[int] | None = None,
        actor: str | None = None,
    ) -> BulkPlanResult:
        """Place one visit for every branch whose cell in the week is empty.

        Branches are handled in grid order. Capacity and spacing follow the
        placement options; conflicts are resolved per
        ``conflict_resolution``. All drafts are written with one
        ``create_many`` call.
        """

        start, end = self._week(year, week_number)
        wanted = set(branch_ids) if branch_ids is not None else None
        branches = [b for b in self.branches if wanted is None or b.id in wanted]

        existing = await self.store.all_visits()
        raise_for_result(existing)
        existing_visits = existing.data or []

        run = PlacementRun(
            self.options,
            existing_visits,
            created_by=actor or PLANNER_ACTOR,
            non_working_weekdays=self.settings.planning_non_working_weekdays,
        )
        outcome = BulkPlanResult()
        drafts: list[VisitDraft] = []

        for cell in project_week(branches, existing_visits, start, end):
            if cell.status != CellStatus.NONE:
                continue
            branch_id = cell.branch_id
            match = first_matching_batch(self.contracts, branch_id, on=start)
            if match is None:
                outcome.failed_branches.append(
                    FailedBranch(branch_id, "Not covered by any active contract")
                )
                continue
            window = contract_year_window(match.contract, year)
            target = self._first_working_day(max(start, window[0])) if window else None
            if window is None or target > min(end, window[1]):
                outcome.failed_branches.append(
                    FailedBranch(branch_id, "Week lies outside the contract period")
                )
                continue
            try:
                draft, conflict = run.place(branch_id, match.contract, match.batch, target, window)
            except PlanningRunError as exc:
                outcome.failed_branches.append(
                    FailedBranch(branch_id, f"{exc}: {exc.technical_detail}")
                )
                continue
            if conflict is not None:
                outcome.conflicts.append(conflict)
            if draft is None:
                outcome.failed_branches.append(FailedBranch(branch_id, conflict.reason))
                continue
            drafts.append(draft)

        if drafts:
            created = await self.store.create_many(drafts)
            if created.success:
                outcome.planned_visit_ids = [v.id for v in created.data or []]
            else:
                logger.warning("Bulk plan of week %s/%s failed: %s", week_number, year, created.error)
                outcome.failed_branches.extend(
                    FailedBranch(d.branch_id, created.error or "write failed") for d in drafts
                )
        outcome.success_count = len(outcome.planned_visit_ids)
        logger.info(
            "Bulk plan week %s/%s: planned=%s failed=%s conflicts=%s",
            week_number,
            year,
            outcome.success_count,
            len(outcome.failed_branches),
            len(outcome.conflicts),
        )
        return outcome

    async def delete_visits(
        self,
        visit_ids: Sequence[int],
        confirm: bool = False,
        hard: bool = False,
        actor: str | None = None,
    ) -> BulkDeleteResult:
        """Delete the selected visits in the given order.

        Nothing is deleted while the selection contains completed,
        in-progress or emergency visits and ``confirm`` is not set. With
        ``hard`` only scheduled visits are removed; the others are archived.
        """

        outcome = BulkDeleteResult(requested=len(visit_ids))
        visits: list[Any] = []
        for visit_id in visit_ids:
            found = await self.store.get(visit_id)
            if found.success:
                visits.append(found.data)
            else:
                outcome.failed_ids.append(visit_id)

        risky = [v for v in visits if is_risky(v)]
        if risky and not confirm:
            outcome.confirmation_required = True
            outcome.warning = (
                f"{len(risky)} of {len(visit_ids)} selected visit(s) are completed, "
                "in progress or emergency visits. Deleting them loses recorded "
                "field work; confirm to continue."
            )
            return outcome

        for visit in visits:
            remove = hard and visit.status == VisitStatus.SCHEDULED.value
            result = await self.store.delete(visit.id, hard=remove, actor=actor)
            if result.success:
                outcome.deleted_count += 1
            else:
                outcome.failed_ids.append(visit.id)
                logger.warning("Failed to delete visit %s: %s", visit.id, result.error)
        return outcome

    async def move_visit(
        self,
        visit_id: int,
        target_date: date | str | None = None,
        from_day: int | None = None,
        to_day: int | None = None,
        actor: str | None = None,
    ) -> MoveResult:
        """Move a visit to another day.

        The target is either ``target_date`` or the source date shifted by
        ``to_day - from_day`` grid columns.

        Raises:
            NotFoundError: Unknown visit.
            UnparseableDate: The stored date of the visit cannot be parsed.
            ValidationError: Archived visit or contract, non-working target
                day, target too far from today, or missing target.
            CapacityConflict: The target day is full.
            PersistenceError: The update could not be written.
        """

        found = await self.store.get(visit_id)
        raise_for_result(found)
        visit = found.data
        if getattr(visit, "is_archived", False):
            raise ValidationError(f"Visit {visit_id} is archived")
        contract = self._contract(visit.contract_id)
        if contract is None or getattr(contract, "is_archived", False):
            raise ValidationError(
                f"Visit {visit_id} belongs to an archived or unknown contract"
            )

        source = scheduled_on(visit)
        if source is None:
            raise UnparseableDate(visit.scheduled_date)

        if target_date is not None:
            target = target_date if isinstance(target_date, date) else parse_visit_date(target_date)
            if target is None:
                raise UnparseableDate(str(target_date))
        elif from_day is not None and to_day is not None:
            target = source + timedelta(days=to_day - from_day)
        else:
            raise ValidationError("Provide target_date or both from_day and to_day")

        if target == source:
            raise ValidationError(f"Visit {visit_id} is already scheduled on that day")
        if target.weekday() in self.settings.planning_non_working_weekdays:
            raise ValidationError(
                f"{WEEKDAY_NAMES[target.weekday()].capitalize()} is not a working day"
            )
        max_days = self.settings.planning_move_max_days
        if abs((target - self._today()).days) > max_days:
            raise ValidationError(f"Target date is more than {max_days} days from today")

        day = await self.store.visits_in_range(target, target)
        raise_for_result(day)
        occupied = [v for v in day.data or [] if occupies_calendar(v) and v.id != visit_id]
        if len(occupied) >= self.options.max_visits_per_day:
            raise CapacityConflict(
                format_visit_date(target), len(occupied), self.options.max_visits_per_day
            )

        from_date = visit.scheduled_date
        updated = await self.store.update(
            visit_id, {"scheduled_date": format_visit_date(target), "updated_by": actor}
        )
        raise_for_result(updated)

        movement = VisitMovement(
            visit_id=visit_id,
            from_date=from_date,
            to_date=format_visit_date(target),
            from_day=from_day,
            to_day=to_day,
            actor=actor,
            timestamp=datetime.now(timezone.utc),
        )
        logger.info("Moved visit %s from %s to %s", visit_id, movement.from_date, movement.to_date)
        return MoveResult(visit=updated.data, movement=movement)
