"""Date handling for the legacy ``d(d)-mmm-y(yyy)`` visit date format.

Visit dates are stored as text (``05-Jan-2025``) for compatibility with the
existing data set. Everything inside the planning engine works on
``datetime.date``; this module is the single place where text is parsed and
formatted again.

Parsing is strict: a value that cannot be read unambiguously yields ``None``
and callers must exclude it. It is never coerced to today.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

WEEKS_PER_YEAR = 52
DAYS_PER_WEEK = 7

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)
_MONTH_BY_NAME = {name.lower(): idx for idx, name in enumerate(MONTH_ABBREVIATIONS, 1)}

# ASCII digits only
_VISIT_DATE_RE = re.compile(r"^([0-9]{1,2})-([A-Za-z]{3})-([0-9]{2}|[0-9]{4})$")
_ISO_DATE_RE = re.compile(r"^([0-9]{4})-([0-9]{1,2})-([0-9]{1,2})$")
_SLASH_DATE_RE = re.compile(r"^([0-9]{1,2})/([0-9]{1,2})/([0-9]{4})$")
_DASH_NUMERIC_RE = re.compile(r"^([0-9]{1,2})-([0-9]{1,2})-([0-9]{4})$")

VISIT_DATE_FORMAT = "dd-mmm-yyyy"


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_visit_date(value: str | None) -> date | None:
    """Parse a ``d(d)-mmm-y(yyy)`` string into a date.

    Two-digit years are read as 20yy. Month abbreviations are matched
    case-insensitively. Returns ``None`` for empty, malformed or impossible
    values such as ``"Invalid Date"`` or ``"31-Feb-2025"``.
    """

    if not value:
        return None
    match = _VISIT_DATE_RE.match(value.strip())
    if match is None:
        return None
    day_s, month_s, year_s = match.groups()
    month = _MONTH_BY_NAME.get(month_s.lower())
    if month is None:
        return None
    year = int(year_s)
    if len(year_s) == 2:
        year += 2000
    return _safe_date(year, month, int(day_s))


def format_visit_date(value: date) -> str:
    """Format a date in the persisted ``dd-Mmm-yyyy`` form."""

    return f"{value.day:02d}-{MONTH_ABBREVIATIONS[value.month - 1]}-{value.year:04d}"


@dataclass
class DateValidation:
    """Outcome of normalizing an externally supplied date string.

    Attributes:
        is_valid: Whether the input could be interpreted.
        standardized: Normalized ``dd-Mmm-yyyy`` value when valid.
        detected_format: Name of the input format that matched.
        warnings: Human-readable notes (conversion or rejection reasons).
    """

    is_valid: bool
    standardized: str | None = None
    detected_format: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def value(self) -> date | None:
        return parse_visit_date(self.standardized)


def standardize_date(value: str | None) -> DateValidation:
    """Normalize the date formats accepted at the API boundary.

    Supported inputs: ``dd-mmm-yyyy`` (target), ``yyyy-mm-dd``,
    ``dd/mm/yyyy`` and ``mm-dd-yyyy``.
    """

    if value is None or not value.strip():
        return DateValidation(is_valid=False, warnings=["Empty date field"])

    text = value.strip()
    parsed: date | None = None
    detected: str | None = None

    if _VISIT_DATE_RE.match(text):
        parsed = parse_visit_date(text)
        detected = VISIT_DATE_FORMAT
    elif match := _ISO_DATE_RE.match(text):
        y, m, d = (int(g) for g in match.groups())
        parsed = _safe_date(y, m, d)
        detected = "yyyy-mm-dd"
    elif match := _SLASH_DATE_RE.match(text):
        d, m, y = (int(g) for g in match.groups())
        parsed = _safe_date(y, m, d)
        detected = "dd/mm/yyyy"
    elif match := _DASH_NUMERIC_RE.match(text):
        m, d, y = (int(g) for g in match.groups())
        parsed = _safe_date(y, m, d)
        detected = "mm-dd-yyyy"

    if parsed is None:
        return DateValidation(
            is_valid=False,
            detected_format=detected,
            warnings=[
                f'Unsupported date format: "{text}". Supported formats: '
                "dd-mmm-yyyy, yyyy-mm-dd, dd/mm/yyyy, mm-dd-yyyy"
            ],
        )

    warnings: list[str] = []
    if detected != VISIT_DATE_FORMAT:
        warnings.append(f"Date converted from {detected} to {VISIT_DATE_FORMAT} format")
    return DateValidation(
        is_valid=True,
        standardized=format_visit_date(parsed),
        detected_format=detected,
        warnings=warnings,
    )


# --- Week grid helpers -------------------------------------------------------


def week_bounds(year: int, week_number: int) -> tuple[date, date]:
    """Return the inclusive (start, end) of a planning week.

    Planning weeks are counted from January 1st, not ISO weeks:
    ``start = Jan 1 + (week - 1) * 7`` and ``end = start + 6``.
    """

    if week_number < 1 or week_number > WEEKS_PER_YEAR:
        raise ValueError(f"week_number must be between 1 and {WEEKS_PER_YEAR}")
    start = date(year, 1, 1) + timedelta(days=(week_number - 1) * DAYS_PER_WEEK)
    return start, start + timedelta(days=DAYS_PER_WEEK - 1)


def week_number_for(value: date, year: int) -> int | None:
    """Return the planning week containing ``value`` or ``None``.

    The last day or two of a year fall after week 52 and belong to no week.
    """

    offset = (value - date(year, 1, 1)).days
    if offset < 0:
        return None
    week = offset // DAYS_PER_WEEK + 1
    return week if week <= WEEKS_PER_YEAR else None


def day_index(value: date, week_start: date) -> int | None:
    """Return the 0-based column of ``value`` inside the week, else ``None``."""

    offset = (value - week_start).days
    return offset if 0 <= offset < DAYS_PER_WEEK else None


def align_to_weekday(value: date, weekday: int) -> date:
    """Move ``value`` forward to the next date with the given Python weekday."""

    return value + timedelta(days=(weekday - value.weekday()) % DAYS_PER_WEEK)


def next_working_day(value: date, non_working_weekdays: Iterable[int]) -> date:
    """Return ``value`` or the first later date not on a non-working weekday."""

    skip = set(non_working_weekdays)
    if skip.issuperset(range(DAYS_PER_WEEK)):
        raise ValueError("At least one weekday must be a working day")
    while value.weekday() in skip:
        value += timedelta(days=1)
    return value


def scheduled_on(visit: object) -> date | None:
    """Return the parsed ``scheduled_date`` of a visit-like object."""

    return parse_visit_date(getattr(visit, "scheduled_date", None))
