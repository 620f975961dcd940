"""Placement of regular and emergency visits on the calendar.

The algorithm is a pure function over an in-memory snapshot of contracts,
branches and visits: :meth:`VisitPlanningAlgorithm.plan` never writes. The
returned drafts are persisted afterwards by
:func:`app.services.visit_mutations.commit_planned_visits`.

Regular visits are spread at an even interval of ``365 / required`` days
starting at the planning window start aligned to the preferred week start.
Every candidate day must stay under the per-day capacity (existing visits
plus visits planned earlier in the same run, all branches together) and
keep the minimum distance to other visits of the same branch. Violations
are resolved according to ``PlanningOptions.conflict_resolution``.
"""

from __future__ import annotations

import math
import random
import time
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Iterable

from app.core.logging import logger
from app.models.visit import VisitStatus, VisitType
from app.schemas.planning import PlanningOptions
from app.services.contract_requirements import (
    batch_services,
    contract_requirements,
    contract_window,
    contracts_covering_branch,
    first_matching_batch,
)
from app.services.grid_projection import WEEKDAY_NAMES
from app.services.planning_errors import PlanningError, PlanningRunError
from app.services.visit_dates import align_to_weekday, format_visit_date, scheduled_on
from app.services.visit_store import VisitDraft
from core.settings import get_settings

WEEK_START_WEEKDAY = {"saturday": 5, "sunday": 6}

PLANNER_ACTOR = "visit-planner"

RESOLUTION_RESCHEDULED = "rescheduled"
RESOLUTION_SKIPPED = "skipped"
RESOLUTION_UNRESOLVED = "unresolved"
RESOLUTION_WINDOW_EXHAUSTED = "window_exhausted"

# Statuses that fulfil part of the yearly requirement when
# include_existing_visits is set. Completed visits always count.
_PENDING_STATUSES = {
    VisitStatus.SCHEDULED.value,
    VisitStatus.IN_PROGRESS.value,
    VisitStatus.RESCHEDULED.value,
}
_ALTERNATIVES_REPORTED = 3


@dataclass
class VisitConflict:
    """A proposed date that violated capacity or spacing.

    ``resolution`` is one of ``rescheduled``, ``skipped``, ``unresolved``
    or ``window_exhausted``.
    """

    branch_id: int
    contract_id: int | None
    original_date: date
    resolution: str
    reason: str
    max_daily_visits: int
    existing_visits: int = 0
    resolved_date: date | None = None
    alternative_dates: list[date] = field(default_factory=list)


@dataclass
class PlanningSummary:
    total_planned: int = 0
    total_conflicts: int = 0
    total_skipped: int = 0
    planning_time: float = 0.0


@dataclass
class PlanningResult:
    success: bool
    planned_visits: list[VisitDraft] = field(default_factory=list)
    conflicts: list[VisitConflict] = field(default_factory=list)
    summary: PlanningSummary = field(default_factory=PlanningSummary)
    errors: list[str] = field(default_factory=list)


def occupies_calendar(visit: Any) -> bool:
    """Whether a visit takes a slot of its day for capacity and spacing."""

    if getattr(visit, "is_archived", False):
        return False
    return getattr(visit, "status", None) != VisitStatus.CANCELLED.value


class DayLedger:
    """Per-day load and per-branch visit days for one planning run.

    Days whose weekday is in ``non_working_weekdays`` never take a visit.
    """

    def __init__(
        self,
        max_per_day: int,
        min_days_between: int,
        non_working_weekdays: Iterable[int] = (),
    ) -> None:
        self.max_per_day = max_per_day
        self.min_days_between = min_days_between
        self.non_working_weekdays = frozenset(non_working_weekdays)
        self._load: Counter[date] = Counter()
        self._branch_days: dict[int, list[date]] = defaultdict(list)

    def load_existing(self, visits: Iterable[Any]) -> int:
        """Register stored visits; returns how many had an unparseable date."""

        unparseable = 0
        for v in visits:
            if not occupies_calendar(v):
                continue
            day = scheduled_on(v)
            if day is None:
                unparseable += 1
                continue
            self.reserve(v.branch_id, day)
        return unparseable

    def load(self, day: date) -> int:
        return self._load[day]

    def reserve(self, branch_id: int, day: date) -> None:
        self._load[day] += 1
        self._branch_days[branch_id].append(day)

    def release(self, branch_id: int, day: date) -> None:
        self._load[day] -= 1
        self._branch_days[branch_id].remove(day)

    def violation(self, branch_id: int, day: date) -> str | None:
        """Return a human-readable reason the day cannot take the visit."""

        if day.weekday() in self.non_working_weekdays:
            return f"{WEEKDAY_NAMES[day.weekday()].capitalize()} is not a working day"
        if self._load[day] >= self.max_per_day:
            return f"Day already has {self._load[day]} of {self.max_per_day} visits"
        for other in self._branch_days.get(branch_id, ()):
            if abs((other - day).days) < self.min_days_between:
                return (
                    f"Branch {branch_id} already has a visit on "
                    f"{format_visit_date(other)} (min {self.min_days_between} day(s) apart)"
                )
        return None


class PlacementRun:
    """Shared state of one planning pass over several branches.

    Used by :class:`VisitPlanningAlgorithm` for a full-year run and by the
    week bulk-plan action, which places one visit per branch.
    """

    def __init__(
        self,
        options: PlanningOptions,
        existing_visits: Iterable[Any] = (),
        created_by: str | None = PLANNER_ACTOR,
        non_working_weekdays: Iterable[int] = (),
    ) -> None:
        self.options = options
        self.created_by = created_by
        self.ledger = DayLedger(
            options.max_visits_per_day,
            options.min_days_between_visits,
            non_working_weekdays,
        )
        self.unparseable = self.ledger.load_existing(existing_visits)
        self.rng = random.Random(options.random_seed)

    def _draft(
        self, branch_id: int, contract: Any, batch: Any, day: date, visit_type: str
    ) -> VisitDraft:
        self.ledger.reserve(branch_id, day)
        return VisitDraft(
            branch_id=branch_id,
            contract_id=contract.id,
            company_id=getattr(contract, "company_id", None),
            scheduled_date=format_visit_date(day),
            type=visit_type,
            status=VisitStatus.SCHEDULED.value,
            services=batch_services(batch) if batch is not None else None,
            created_by=self.created_by,
        )

    def discard(self, drafts: Iterable[VisitDraft]) -> None:
        for d in drafts:
            self.ledger.release(d.branch_id, d.scheduled_on)

    def alternatives(
        self, branch_id: int, target: date, window: tuple[date, date]
    ) -> list[date]:
        """Valid days near ``target`` probed as +1, -1, +2, -2, ..."""

        start, end = window
        found: list[date] = []
        for offset in range(1, self.options.reschedule_window_days + 1):
            for candidate in (target + timedelta(days=offset), target - timedelta(days=offset)):
                if not start <= candidate <= end:
                    continue
                if self.ledger.violation(branch_id, candidate) is None:
                    found.append(candidate)
                    if len(found) >= _ALTERNATIVES_REPORTED:
                        return found
        return found

    def place(
        self,
        branch_id: int,
        contract: Any,
        batch: Any,
        target: date,
        window: tuple[date, date],
        visit_type: str = VisitType.REGULAR.value,
    ) -> tuple[VisitDraft | None, VisitConflict | None]:
        """Place one visit on ``target`` or resolve the conflict.

        Returns the draft (``None`` when the visit was not placed) and the
        conflict recorded on the way, if any.

        Raises:
            PlanningRunError: With ``conflict_resolution="error"`` when the
                target day is not valid.
        """

        reason = self.ledger.violation(branch_id, target)
        if reason is None:
            logger.debug("Placed %s visit for branch %s on %s", visit_type, branch_id, target)
            return self._draft(branch_id, contract, batch, target, visit_type), None

        policy = self.options.conflict_resolution
        conflict = VisitConflict(
            branch_id=branch_id,
            contract_id=getattr(contract, "id", None),
            original_date=target,
            resolution=RESOLUTION_SKIPPED,
            reason=reason,
            max_daily_visits=self.options.max_visits_per_day,
            existing_visits=self.ledger.load(target),
        )
        if policy == "error":
            raise PlanningRunError(
                f"Branch {branch_id}: cannot place visit on {format_visit_date(target)}",
                technical_detail=reason,
            )
        if policy == "skip":
            return None, conflict

        alternatives = self.alternatives(branch_id, target, window)
        if not alternatives:
            conflict.resolution = RESOLUTION_UNRESOLVED
            conflict.reason = (
                f"{reason}; no valid day within {self.options.reschedule_window_days} day(s)"
            )
            return None, conflict

        chosen = alternatives[0]
        conflict.resolution = RESOLUTION_RESCHEDULED
        conflict.resolved_date = chosen
        conflict.alternative_dates = alternatives[1:]
        logger.debug("Rescheduled branch %s visit from %s to %s", branch_id, target, chosen)
        return self._draft(branch_id, contract, batch, chosen, visit_type), conflict

    def place_in_segment(
        self,
        branch_id: int,
        contract: Any,
        batch: Any,
        segment: tuple[date, date],
        visit_type: str,
    ) -> VisitDraft | None:
        """Draw a random day of the segment and take the nearest valid one."""

        seg_start, seg_end = segment
        span = (seg_end - seg_start).days
        pick = seg_start + timedelta(days=self.rng.randint(0, span))
        candidates = sorted(
            (seg_start + timedelta(days=i) for i in range(span + 1)),
            key=lambda d: (abs((d - pick).days), d),
        )
        for day in candidates:
            if self.ledger.violation(branch_id, day) is None:
                return self._draft(branch_id, contract, batch, day, visit_type)
        return None


def _counted_existing(
    existing: Iterable[Any],
    branch_id: int,
    contract_id: int,
    visit_type: str,
    window: tuple[date, date],
    include_pending: bool,
) -> int:
    start, end = window
    count = 0
    for v in existing:
        if getattr(v, "is_archived", False):
            continue
        if v.branch_id != branch_id or v.contract_id != contract_id or v.type != visit_type:
            continue
        day = scheduled_on(v)
        if day is None or not start <= day <= end:
            continue
        if v.status == VisitStatus.COMPLETED.value or (
            include_pending and v.status in _PENDING_STATUSES
        ):
            count += 1
    return count


class VisitPlanningAlgorithm:
    """Compute new visits for a set of branches.

    Example:
        >>> algorithm = VisitPlanningAlgorithm(PlanningOptions(max_visits_per_day=5))
        >>> result = algorithm.plan(branches, contracts, existing_visits)
        >>> result.summary.total_planned
    """

    def __init__(
        self,
        options: PlanningOptions | None = None,
        non_working_weekdays: Iterable[int] | None = None,
    ) -> None:
        self.options = options or PlanningOptions()
        if non_working_weekdays is None:
            non_working_weekdays = get_settings().planning_non_working_weekdays
        self.non_working_weekdays = tuple(non_working_weekdays)

    @property
    def week_start_weekday(self) -> int:
        return WEEK_START_WEEKDAY[self.options.preferred_week_start]

    def start_run(
        self, existing_visits: Iterable[Any], created_by: str | None = PLANNER_ACTOR
    ) -> PlacementRun:
        return PlacementRun(
            self.options,
            existing_visits,
            created_by=created_by,
            non_working_weekdays=self.non_working_weekdays,
        )

    def plan(
        self,
        target_branches: Iterable[Any],
        contracts: Iterable[Any],
        existing_visits: Iterable[Any],
        today: date | None = None,
    ) -> PlanningResult:
        """Plan the missing regular (and optionally emergency) visits.

        Args:
            target_branches: Branch objects or branch ids to plan for.
            contracts: Contracts with their service batches loaded.
            existing_visits: Current contents of the visit store.
            today: Reference date; defaults to ``date.today()``.

        Returns:
            A :class:`PlanningResult`. Failures are reported in ``errors``
            and never raised.
        """

        started = time.perf_counter()
        today = today or date.today()
        year = self.options.year or today.year
        contracts = list(contracts)
        existing = list(existing_visits)

        run = self.start_run(existing)
        if run.unparseable:
            logger.warning(
                "Ignoring %s existing visit(s) with an unparseable scheduled date",
                run.unparseable,
            )

        planned: list[VisitDraft] = []
        conflicts: list[VisitConflict] = []
        errors: list[str] = []
        skipped = 0

        for branch in target_branches:
            branch_id = getattr(branch, "id", branch)
            if getattr(branch, "is_archived", False):
                continue
            drafts: list[VisitDraft] = []
            branch_conflicts: list[VisitConflict] = []
            try:
                branch_skipped = self._plan_branch(
                    run, branch_id, contracts, existing, year, today, drafts, branch_conflicts
                )
            except PlanningError as exc:
                run.discard(drafts)
                detail = f" ({exc.technical_detail})" if exc.technical_detail else ""
                errors.append(f"{exc}{detail}")
                logger.warning("Planning aborted for branch %s: %s%s", branch_id, exc, detail)
                continue
            except Exception as exc:
                run.discard(drafts)
                errors.append(f"Branch {branch_id}: unexpected planning failure: {exc}")
                logger.exception("Unexpected planning failure for branch %s", branch_id)
                continue
            planned.extend(drafts)
            conflicts.extend(branch_conflicts)
            skipped += branch_skipped

        summary = PlanningSummary(
            total_planned=len(planned),
            total_conflicts=len(conflicts),
            total_skipped=skipped,
            planning_time=round(time.perf_counter() - started, 4),
        )
        logger.info(
            "Planning run for %s: planned=%s conflicts=%s skipped=%s errors=%s",
            year,
            summary.total_planned,
            summary.total_conflicts,
            summary.total_skipped,
            len(errors),
        )
        return PlanningResult(
            success=not errors,
            planned_visits=planned,
            conflicts=conflicts,
            summary=summary,
            errors=errors,
        )

    def _plan_branch(
        self,
        run: PlacementRun,
        branch_id: int,
        contracts: list[Any],
        existing: list[Any],
        year: int,
        today: date,
        drafts: list[VisitDraft],
        conflicts: list[VisitConflict],
    ) -> int:
        skipped = 0
        for contract in contracts_covering_branch(contracts, branch_id):
            window = contract_window(contract, year, today)
            if window is None:
                logger.debug(
                    "Contract %s has no planning window in %s for branch %s",
                    contract.id,
                    year,
                    branch_id,
                )
                continue
            match = first_matching_batch([contract], branch_id)
            batch = match.batch if match else None
            required = contract_requirements(contract, branch_id)

            needed = required.regular - _counted_existing(
                existing,
                branch_id,
                contract.id,
                VisitType.REGULAR.value,
                window,
                self.options.include_existing_visits,
            )
            skipped += self._plan_regular(
                run, branch_id, contract, batch, window, needed, drafts, conflicts
            )

            if self.options.include_emergency_visits:
                needed = required.emergency - _counted_existing(
                    existing,
                    branch_id,
                    contract.id,
                    VisitType.EMERGENCY.value,
                    window,
                    self.options.include_existing_visits,
                )
                skipped += self._plan_emergency(
                    run, branch_id, contract, batch, window, needed, drafts, conflicts
                )
        return skipped

    def _plan_regular(
        self,
        run: PlacementRun,
        branch_id: int,
        contract: Any,
        batch: Any,
        window: tuple[date, date],
        needed: int,
        drafts: list[VisitDraft],
        conflicts: list[VisitConflict],
    ) -> int:
        if needed <= 0:
            return 0
        start, end = window
        first = align_to_weekday(start, self.week_start_weekday)
        interval = 365 / needed
        skipped = 0

        for i in range(needed):
            target = first + timedelta(days=math.floor(i * interval))
            if target > end:
                conflicts.append(
                    VisitConflict(
                        branch_id=branch_id,
                        contract_id=contract.id,
                        original_date=target,
                        resolution=RESOLUTION_WINDOW_EXHAUSTED,
                        reason=(
                            f"Planning window ends {format_visit_date(end)}; "
                            f"{needed - i} regular visit(s) could not be placed"
                        ),
                        max_daily_visits=self.options.max_visits_per_day,
                    )
                )
                skipped += needed - i
                break
            draft, conflict = run.place(branch_id, contract, batch, target, window)
            if draft is not None:
                drafts.append(draft)
            else:
                skipped += 1
            if conflict is not None:
                conflicts.append(conflict)
        return skipped

    def _plan_emergency(
        self,
        run: PlacementRun,
        branch_id: int,
        contract: Any,
        batch: Any,
        window: tuple[date, date],
        needed: int,
        drafts: list[VisitDraft],
        conflicts: list[VisitConflict],
    ) -> int:
        # Stratified: one random day per equal segment of the window.
        if needed <= 0:
            return 0
        start, end = window
        total_days = (end - start).days + 1
        segments = min(needed, total_days)
        seg_len = total_days / segments
        skipped = needed - segments

        for i in range(segments):
            seg_start = start + timedelta(days=math.floor(i * seg_len))
            seg_end = start + timedelta(days=math.floor((i + 1) * seg_len) - 1)
            draft = run.place_in_segment(
                branch_id, contract, batch, (seg_start, seg_end), VisitType.EMERGENCY.value
            )
            if draft is not None:
                drafts.append(draft)
                continue
            reason = "No day with free capacity in emergency segment"
            if self.options.conflict_resolution == "error":
                raise PlanningRunError(
                    f"Branch {branch_id}: cannot place emergency visit between "
                    f"{format_visit_date(seg_start)} and {format_visit_date(seg_end)}",
                    technical_detail=reason,
                )
            skipped += 1
            conflicts.append(
                VisitConflict(
                    branch_id=branch_id,
                    contract_id=contract.id,
                    original_date=seg_start,
                    resolution=(
                        RESOLUTION_SKIPPED
                        if self.options.conflict_resolution == "skip"
                        else RESOLUTION_UNRESOLVED
                    ),
                    reason=reason,
                    max_daily_visits=self.options.max_visits_per_day,
                    existing_visits=run.ledger.load(seg_start),
                )
            )
        if skipped:
            logger.info(
                "Branch %s: %s emergency visit(s) could not be placed", branch_id, skipped
            )
        return skipped
