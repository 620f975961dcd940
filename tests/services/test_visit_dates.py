from datetime import date

import pytest

from app.services.visit_dates import (
    align_to_weekday,
    day_index,
    format_visit_date,
    next_working_day,
    parse_visit_date,
    standardize_date,
    week_bounds,
    week_number_for,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("05-Jan-2025", date(2025, 1, 5)),
        ("5-jan-25", date(2025, 1, 5)),
        ("29-FEB-2024", date(2024, 2, 29)),
    ],
)
def test_parse_visit_date_accepts_legacy_format(raw, expected):
    assert parse_visit_date(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "Invalid Date",
        "31-Feb-2025",
        "",
        None,
        "NaN",
        "2025-01-05",
        "05-Foo-2025",
        "\u0660\u0665-Jan-\u0662\u0660\u0662\u0665",
    ],
)
def test_parse_visit_date_rejects_everything_else(raw):
    assert parse_visit_date(raw) is None


def test_format_visit_date_pads_day():
    assert format_visit_date(date(2025, 1, 5)) == "05-Jan-2025"


def test_standardize_date_converts_iso_with_warning():
    result = standardize_date("2025-03-07")
    assert result.is_valid
    assert result.standardized == "07-Mar-2025"
    assert result.detected_format == "yyyy-mm-dd"
    assert result.warnings
    assert result.value == date(2025, 3, 7)


def test_standardize_date_reads_day_first_slashes():
    assert standardize_date("07/03/2025").standardized == "07-Mar-2025"


def test_standardize_date_keeps_target_format_without_warning():
    result = standardize_date("7-mar-2025")
    assert result.standardized == "07-Mar-2025"
    assert result.warnings == []


def test_standardize_date_rejects_garbage():
    result = standardize_date("next tuesday")
    assert not result.is_valid
    assert result.standardized is None
    assert "Unsupported date format" in result.warnings[0]


def test_week_bounds_count_from_january_first():
    assert week_bounds(2025, 1) == (date(2025, 1, 1), date(2025, 1, 7))
    assert week_bounds(2025, 52) == (date(2025, 12, 24), date(2025, 12, 30))


@pytest.mark.parametrize("week", [0, 53])
def test_week_bounds_rejects_out_of_range(week):
    with pytest.raises(ValueError):
        week_bounds(2025, week)


def test_week_number_for_last_day_of_year_is_outside_grid():
    assert week_number_for(date(2025, 1, 8), 2025) == 2
    assert week_number_for(date(2025, 12, 30), 2025) == 52
    assert week_number_for(date(2025, 12, 31), 2025) is None
    assert week_number_for(date(2024, 12, 31), 2025) is None


def test_day_index_and_alignment():
    start = date(2025, 1, 1)
    assert day_index(date(2025, 1, 3), start) == 2
    assert day_index(date(2025, 1, 8), start) is None
    # 2025-01-01 is a Wednesday; the next Saturday is the 4th
    assert align_to_weekday(start, 5) == date(2025, 1, 4)
    assert align_to_weekday(date(2025, 1, 4), 5) == date(2025, 1, 4)


@pytest.mark.parametrize(
    "raw",
    [
        "٠٥-Jan-٢٠٢٥",
        "٢٠٢٥-01-05",
        "０５/01/2025",
    ],
)
def test_standardize_date_accepts_ascii_digits_only(raw):
    result = standardize_date(raw)
    assert not result.is_valid
    assert result.standardized is None


def test_next_working_day_skips_non_working_weekdays():
    # 2027-01-01 is a Friday
    assert next_working_day(date(2027, 1, 1), [4]) == date(2027, 1, 2)
    assert next_working_day(date(2027, 1, 1), [4, 5]) == date(2027, 1, 3)
    assert next_working_day(date(2027, 1, 2), [4]) == date(2027, 1, 2)
    with pytest.raises(ValueError):
        next_working_day(date(2027, 1, 1), range(7))
