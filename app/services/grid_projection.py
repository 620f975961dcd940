"""Read-only projection of visits onto the weekly planning grid.

A grid cell is the intersection of one branch and one planning week (or one
day of that week). Its status is derived from the visits in the cell on
every call and never stored, so a projection built right after a write
always reflects that write.

Visits whose ``scheduled_date`` cannot be parsed are excluded from every
cell. Archived visits are ignored.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import StrEnum
from typing import Any, Iterable, Sequence

from app.models.visit import VisitStatus, VisitType
from app.services.visit_dates import (
    DAYS_PER_WEEK,
    WEEKS_PER_YEAR,
    day_index,
    scheduled_on,
    week_bounds,
    week_number_for,
)

WEEKDAY_NAMES = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


class CellStatus(StrEnum):
    NONE = "none"
    PLANNED = "planned"
    PARTIAL = "partial"
    DONE = "done"
    EMERGENCY = "emergency"


@dataclass
class GridCell:
    branch_id: int
    status: CellStatus
    visits: list[Any] = field(default_factory=list)
    branch_code: str | None = None
    branch_name: str | None = None


@dataclass
class WeekData:
    week_number: int
    start_date: date
    end_date: date
    branches: list[GridCell] = field(default_factory=list)


@dataclass
class DayColumn:
    day_index: int
    day: date
    weekday: str
    is_working_day: bool
    visit_count: int
    max_visits: int
    is_available: bool
    branches: list[GridCell] = field(default_factory=list)


@dataclass
class GridSummary:
    total_slots: int = 0
    planned_slots: int = 0
    completed_slots: int = 0
    partial_slots: int = 0
    emergency_slots: int = 0
    planning_percentage: int = 0
    completion_percentage: int = 0


@dataclass
class WeekStatusOverview:
    week_number: int
    year: int
    total_visits: int = 0
    completed_visits: int = 0
    pending_visits: int = 0
    emergency_visits: int = 0
    completion_rate: int = 0


def _percent(part: int, whole: int) -> int:
    # Half-up rounding of the percentage.
    return math.floor(part * 100 / whole + 0.5) if whole > 0 else 0


def _live(visits: Iterable[Any]) -> list[Any]:
    return [v for v in visits if not getattr(v, "is_archived", False)]


def _sort_key(visit: Any) -> tuple:
    return (scheduled_on(visit) or date.max, getattr(visit, "id", None) or 0)


def derive_cell_status(visits: Iterable[Any]) -> CellStatus:
    """Derive the aggregate status of the visits in one cell.

    Precedence: no visits → ``none``; any emergency visit → ``emergency``;
    all completed → ``done``; some completed → ``partial``; otherwise
    ``planned``. Archived visits are ignored.
    """

    live = _live(visits)
    if not live:
        return CellStatus.NONE
    if any(v.type == VisitType.EMERGENCY.value for v in live):
        return CellStatus.EMERGENCY
    completed = sum(1 for v in live if v.status == VisitStatus.COMPLETED.value)
    if completed == len(live):
        return CellStatus.DONE
    if completed > 0:
        return CellStatus.PARTIAL
    return CellStatus.PLANNED


def _cell(branch: Any, visits: list[Any]) -> GridCell:
    ordered = sorted(visits, key=_sort_key)
    return GridCell(
        branch_id=branch.id,
        status=derive_cell_status(ordered),
        visits=ordered,
        branch_code=getattr(branch, "branch_code", None),
        branch_name=getattr(branch, "name", None),
    )


def _visits_by_branch(
    visits: Iterable[Any], start: date, end: date
) -> dict[int, list[Any]]:
    by_branch: dict[int, list[Any]] = defaultdict(list)
    for v in _live(visits):
        day = scheduled_on(v)
        if day is not None and start <= day <= end:
            by_branch[v.branch_id].append(v)
    return by_branch


def project_week(
    branches: Sequence[Any],
    visits: Iterable[Any],
    week_start: date,
    week_end: date,
) -> list[GridCell]:
    """Return one cell per branch for the visits dated in ``[week_start, week_end]``."""

    by_branch = _visits_by_branch(visits, week_start, week_end)
    return [_cell(b, by_branch.get(b.id, [])) for b in branches]


def project_week_days(
    branches: Sequence[Any],
    visits: Iterable[Any],
    week_start: date,
    max_visits: int = 5,
    non_working_weekdays: Iterable[int] = (4,),
) -> list[DayColumn]:
    """Split a week into seven day columns with per-branch cells.

    A day is available when it is a working day and holds fewer than
    ``max_visits`` visits across all branches.
    """

    non_working = set(non_working_weekdays)
    week_end = week_start + timedelta(days=DAYS_PER_WEEK - 1)
    by_day: dict[int, list[Any]] = defaultdict(list)
    for v in _live(visits):
        day = scheduled_on(v)
        idx = day_index(day, week_start) if day is not None else None
        if idx is not None and week_start <= day <= week_end:
            by_day[idx].append(v)

    columns: list[DayColumn] = []
    for idx in range(DAYS_PER_WEEK):
        day = week_start + timedelta(days=idx)
        day_visits = by_day.get(idx, [])
        is_working = day.weekday() not in non_working
        cells = project_week(branches, day_visits, day, day)
        count = sum(len(c.visits) for c in cells)
        columns.append(
            DayColumn(
                day_index=idx,
                day=day,
                weekday=WEEKDAY_NAMES[day.weekday()],
                is_working_day=is_working,
                visit_count=count,
                max_visits=max_visits,
                is_available=is_working and count < max_visits,
                branches=cells,
            )
        )
    return columns


def build_annual_grid(
    branches: Sequence[Any], visits: Iterable[Any], year: int
) -> list[WeekData]:
    """Project all 52 planning weeks of ``year``.

    Each visit is parsed once and bucketed by week, which keeps the annual
    view linear in the number of visits.
    """

    buckets: dict[tuple[int, int], list[Any]] = defaultdict(list)
    for v in _live(visits):
        day = scheduled_on(v)
        if day is None or day.year != year:
            continue
        week = week_number_for(day, year)
        if week is not None:
            buckets[(week, v.branch_id)].append(v)

    weeks: list[WeekData] = []
    for week_number in range(1, WEEKS_PER_YEAR + 1):
        start, end = week_bounds(year, week_number)
        weeks.append(
            WeekData(
                week_number=week_number,
                start_date=start,
                end_date=end,
                branches=[_cell(b, buckets.get((week_number, b.id), [])) for b in branches],
            )
        )
    return weeks


def summarize_grid(weeks: Iterable[WeekData]) -> GridSummary:
    summary = GridSummary()
    for week in weeks:
        for cell in week.branches:
            summary.total_slots += 1
            if cell.status != CellStatus.NONE:
                summary.planned_slots += 1
            if cell.status == CellStatus.DONE:
                summary.completed_slots += 1
            elif cell.status == CellStatus.PARTIAL:
                summary.partial_slots += 1
            elif cell.status == CellStatus.EMERGENCY:
                summary.emergency_slots += 1
    summary.planning_percentage = _percent(summary.planned_slots, summary.total_slots)
    summary.completion_percentage = _percent(summary.completed_slots, summary.planned_slots)
    return summary


def week_status_overview(
    visits: Iterable[Any], week_number: int, year: int
) -> WeekStatusOverview:
    """Visit counters for one planning week across all branches."""

    start, end = week_bounds(year, week_number)
    in_week = [v for vs in _visits_by_branch(visits, start, end).values() for v in vs]
    total = len(in_week)
    completed = sum(1 for v in in_week if v.status == VisitStatus.COMPLETED.value)
    return WeekStatusOverview(
        week_number=week_number,
        year=year,
        total_visits=total,
        completed_visits=completed,
        pending_visits=sum(1 for v in in_week if v.status == VisitStatus.SCHEDULED.value),
        emergency_visits=sum(1 for v in in_week if v.type == VisitType.EMERGENCY.value),
        completion_rate=_percent(completed, total),
    )
