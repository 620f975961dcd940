from __future__ import annotations

from typing import TYPE_CHECKING

from app.services.visit_dates import parse_visit_date

if TYPE_CHECKING:  # pragma: no cover
    from app.models.visit import Visit

VISIT_CODE_PREFIX = "VISIT"


def compute_visit_code(visit: Visit) -> str | None:
    """Compute the human-readable code of a persisted visit.

    The code is ``VISIT-{year}-{id:04d}`` where ``year`` is taken from the
    scheduled date, e.g. ``VISIT-2025-0042``. Ids above 9999 simply widen
    the numeric part.

    Args:
        visit: Visit with an assigned primary key.

    Returns:
        The visit code, or ``None`` when the visit has no id yet or its
        scheduled date cannot be parsed.
    """
    visit_id = getattr(visit, "id", None)
    scheduled = parse_visit_date(getattr(visit, "scheduled_date", None))
    if visit_id is None or scheduled is None:
        return None
    return f"{VISIT_CODE_PREFIX}-{scheduled.year}-{visit_id:04d}"
