"""Lifecycle transitions of a single visit.

Each transition reads the visit, checks that its current status allows the
change and writes a patch through the visit store. Results are returned as
:class:`StoreResult`; a forbidden transition is a validation failure.

Allowed transitions::

    scheduled   -> in_progress, completed, cancelled, rescheduled
    rescheduled -> scheduled, in_progress, completed, cancelled, rescheduled
    in_progress -> completed, cancelled
    cancelled   -> scheduled
    completed   -> (none; delete or re-plan instead)
"""

from __future__ import annotations

from datetime import date
from typing import Any

from app.core.logging import logger
from app.models.visit import Visit, VisitStatus
from app.services.visit_dates import format_visit_date
from app.services.visit_store import StoreResult, VisitStore

_TRANSITIONS: dict[str, set[str]] = {
    VisitStatus.SCHEDULED.value: {
        VisitStatus.IN_PROGRESS.value,
        VisitStatus.COMPLETED.value,
        VisitStatus.CANCELLED.value,
        VisitStatus.RESCHEDULED.value,
    },
    VisitStatus.RESCHEDULED.value: {
        VisitStatus.SCHEDULED.value,
        VisitStatus.IN_PROGRESS.value,
        VisitStatus.COMPLETED.value,
        VisitStatus.CANCELLED.value,
        VisitStatus.RESCHEDULED.value,
    },
    VisitStatus.IN_PROGRESS.value: {
        VisitStatus.COMPLETED.value,
        VisitStatus.CANCELLED.value,
    },
    VisitStatus.CANCELLED.value: {VisitStatus.SCHEDULED.value},
    VisitStatus.COMPLETED.value: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, set())


async def _transition(
    store: VisitStore,
    visit_id: int,
    target: VisitStatus,
    patch: dict[str, Any],
    actor: str | None,
) -> StoreResult[Visit]:
    found = await store.get(visit_id)
    if not found.success:
        return found
    visit = found.data
    if getattr(visit, "is_archived", False):
        return StoreResult.fail(f"Visit {visit_id} is archived")
    if not can_transition(visit.status, target.value):
        return StoreResult.fail(
            f"Cannot change visit {visit_id} from {visit.status} to {target.value}"
        )

    result = await store.update(
        visit_id, {**patch, "status": target.value, "updated_by": actor}, lifecycle=True
    )
    if result.success:
        logger.info("Visit %s: %s -> %s", visit_id, visit.status, target.value)
    return result


async def complete_visit(
    store: VisitStore,
    visit_id: int,
    results: dict[str, Any],
    completed_date: str | None = None,
    actor: str | None = None,
) -> StoreResult[Visit]:
    """Mark a visit completed with its inspection results.

    ``completed_date`` defaults to today.
    """

    return await _transition(
        store,
        visit_id,
        VisitStatus.COMPLETED,
        {
            "results": results,
            "completed_date": completed_date or format_visit_date(date.today()),
        },
        actor,
    )


async def cancel_visit(
    store: VisitStore,
    visit_id: int,
    reason: str | None = None,
    actor: str | None = None,
) -> StoreResult[Visit]:
    notes = f"Cancelled: {reason}" if reason else "Cancelled"
    return await _transition(store, visit_id, VisitStatus.CANCELLED, {"notes": notes}, actor)


async def reschedule_visit(
    store: VisitStore,
    visit_id: int,
    new_date: str,
    reason: str | None = None,
    actor: str | None = None,
) -> StoreResult[Visit]:
    notes = f"Rescheduled: {reason}" if reason else "Rescheduled"
    return await _transition(
        store,
        visit_id,
        VisitStatus.RESCHEDULED,
        {"scheduled_date": new_date, "notes": notes},
        actor,
    )


async def start_visit(
    store: VisitStore, visit_id: int, actor: str | None = None
) -> StoreResult[Visit]:
    return await _transition(store, visit_id, VisitStatus.IN_PROGRESS, {}, actor)


async def schedule_visit(
    store: VisitStore,
    visit_id: int,
    new_date: str | None = None,
    actor: str | None = None,
) -> StoreResult[Visit]:
    """Put a cancelled or rescheduled visit back on the schedule."""

    patch = {"scheduled_date": new_date} if new_date else {}
    return await _transition(store, visit_id, VisitStatus.SCHEDULED, patch, actor)
