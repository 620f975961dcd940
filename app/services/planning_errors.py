from __future__ import annotations


class PlanningError(RuntimeError):
    """Base class for expected scheduling failures.

    These are business outcomes (bad input, full days, failed writes) as
    opposed to programming errors, so routers translate them into HTTP
    responses instead of letting them surface as 500s.

    Args:
        message: High-level human-readable message for logs and clients.
        technical_detail: Optional technical detail (ids, backend error).
    """

    def __init__(self, message: str, *, technical_detail: str | None = None) -> None:
        super().__init__(message)
        self.technical_detail = technical_detail


class ValidationError(PlanningError):
    """Rejected input: malformed date, uncovered branch, missing field."""


class UnparseableDate(ValidationError):
    """A stored or supplied visit date could not be parsed."""

    def __init__(self, value: str | None) -> None:
        super().__init__(f"Unparseable visit date: {value!r}")
        self.value = value


class CapacityConflict(PlanningError):
    """A day is at or over the configured visits-per-day capacity."""

    def __init__(self, day: str, existing: int, max_per_day: int) -> None:
        super().__init__(
            f"Day {day} already has {existing} visits (max {max_per_day})"
        )
        self.day = day
        self.existing = existing
        self.max_per_day = max_per_day


class PersistenceError(PlanningError):
    """A write against the visit store failed."""


class PlanningRunError(PlanningError):
    """Raised when a planning run could not produce an acceptable result.

    With ``conflict_resolution="error"`` the placement of a branch aborts with
    this error; the algorithm catches it at its boundary and reports it in
    ``PlanningResult.errors``.
    """


class NotFoundError(PlanningError):
    """A referenced visit, branch or contract does not exist."""
