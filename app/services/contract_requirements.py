"""Read-only view over contracts and their service batches.

Contracts and branches come from the surrounding CRUD layer already
validated; everything here is pure aggregation over those inputs. Functions
accept ORM instances or any object exposing the same attributes, which keeps
the planning code usable against in-memory snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable

from app.core.logging import logger
from app.models.visit import VisitStatus, VisitType
from app.services.visit_dates import scheduled_on


@dataclass(frozen=True)
class RequiredVisits:
    regular: int = 0
    emergency: int = 0


@dataclass(frozen=True)
class BatchMatch:
    """A contract together with the first of its batches covering a branch."""

    contract: Any
    batch: Any


def batch_branch_ids(batch: Any) -> set[int]:
    ids = getattr(batch, "branch_ids", None)
    if ids is None:
        ids = [b.id for b in (getattr(batch, "branches", None) or [])]
    return set(ids)


def batch_services(batch: Any) -> dict[str, bool]:
    """Return the service flags a visit inherits from its batch."""

    services = getattr(batch, "services", None)
    if callable(services):
        return services()
    return {
        "fire_extinguisher": bool(getattr(batch, "fire_extinguisher", False)),
        "alarm_system": bool(getattr(batch, "alarm_system", False)),
        "fire_suppression": bool(getattr(batch, "fire_suppression", False)),
        "gas_system": bool(getattr(batch, "gas_system", False)),
        "foam_system": bool(getattr(batch, "foam_system", False)),
    }


def active_contracts(contracts: Iterable[Any]) -> list[Any]:
    return [c for c in contracts if not getattr(c, "is_archived", False)]


def _covering_batches(contract: Any, branch_id: int) -> list[Any]:
    return [
        b
        for b in (getattr(contract, "service_batches", None) or [])
        if branch_id in batch_branch_ids(b)
    ]


def batches_covering_branch(contracts: Iterable[Any], branch_id: int) -> list[Any]:
    """Return all batches of non-archived contracts that include the branch."""

    batches: list[Any] = []
    for contract in active_contracts(contracts):
        batches.extend(_covering_batches(contract, branch_id))
    return batches


def contracts_covering_branch(contracts: Iterable[Any], branch_id: int) -> list[Any]:
    return [c for c in active_contracts(contracts) if _covering_batches(c, branch_id)]


def contract_covers_branch(contract: Any, branch_id: int) -> bool:
    return bool(_covering_batches(contract, branch_id))


def overlaps_year(contract: Any, year: int) -> bool:
    start = getattr(contract, "start_date", None)
    end = getattr(contract, "end_date", None)
    if start is None or end is None:
        logger.warning(
            "Contract %s has no valid period; ignored",
            getattr(contract, "id", None),
        )
        return False
    return start <= date(year, 12, 31) and end >= date(year, 1, 1)


def contract_requirements(contract: Any, branch_id: int) -> RequiredVisits:
    """Sum the obligations of every batch of one contract covering the branch."""

    batches = _covering_batches(contract, branch_id)
    return RequiredVisits(
        regular=sum(max(0, getattr(b, "regular_visits_per_year", 0) or 0) for b in batches),
        emergency=sum(
            max(0, getattr(b, "emergency_visits_per_year", 0) or 0) for b in batches
        ),
    )


def required_visits(contracts: Iterable[Any], branch_id: int, year: int) -> RequiredVisits:
    """Return the annual regular/emergency visits a branch must receive.

    Sums across all non-archived contracts whose period overlaps ``year`` and
    all of their batches that include the branch.
    """

    regular = 0
    emergency = 0
    for contract in active_contracts(contracts):
        if not overlaps_year(contract, year):
            continue
        req = contract_requirements(contract, branch_id)
        regular += req.regular
        emergency += req.emergency
    return RequiredVisits(regular=regular, emergency=emergency)


def first_matching_batch(
    contracts: Iterable[Any], branch_id: int, on: date | None = None
) -> BatchMatch | None:
    """Return the first non-archived contract and batch covering the branch.

    When ``on`` is given, contracts whose period contains that date are
    preferred; otherwise (or when none is active) contract order decides.
    """

    candidates = contracts_covering_branch(contracts, branch_id)
    if not candidates:
        return None
    if on is not None:
        active_on = [c for c in candidates if is_within_contract(on, c)]
        if active_on:
            candidates = active_on
    contract = candidates[0]
    return BatchMatch(contract=contract, batch=_covering_batches(contract, branch_id)[0])


def contract_year_window(contract: Any, year: int) -> tuple[date, date] | None:
    """Intersection of the contract period with the calendar year."""

    if not overlaps_year(contract, year):
        return None
    return max(contract.start_date, date(year, 1, 1)), min(contract.end_date, date(year, 12, 31))


def contract_window(
    contract: Any, year: int, today: date | None = None
) -> tuple[date, date] | None:
    """Return the planning window of a contract inside ``year``.

    The window starts at the contract start or one year before ``today``,
    whichever is later, and never leaves the calendar year. ``None`` when
    the window is empty.
    """

    bounds = contract_year_window(contract, year)
    if bounds is None:
        return None
    today = today or date.today()
    start = max(bounds[0], today - timedelta(days=365))
    if start > bounds[1]:
        return None
    return start, bounds[1]


def is_within_contract(value: date | None, contract: Any) -> bool:
    if value is None:
        return False
    start = getattr(contract, "start_date", None)
    end = getattr(contract, "end_date", None)
    if start is None or end is None:
        return False
    return start <= value <= end


def completion_ratio(contract: Any, branch_id: int, visits: Iterable[Any]) -> float:
    """Share of the branch's required regular visits completed in the period.

    Visits dated outside the contract period are tolerated in the store but
    do not count here. Returns ``1.0`` when nothing is required.
    """

    required = contract_requirements(contract, branch_id).regular
    if required <= 0:
        return 1.0
    completed = 0
    for v in visits:
        if getattr(v, "is_archived", False):
            continue
        if v.branch_id != branch_id or v.contract_id != getattr(contract, "id", None):
            continue
        if v.type != VisitType.REGULAR or v.status != VisitStatus.COMPLETED:
            continue
        if is_within_contract(scheduled_on(v), contract):
            completed += 1
    return min(1.0, completed / required)
