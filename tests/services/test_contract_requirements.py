from datetime import date

from app.services.contract_requirements import (
    batches_covering_branch,
    batch_services,
    completion_ratio,
    contract_window,
    contract_year_window,
    first_matching_batch,
    required_visits,
)
from tests.utils.factories import make_batch, make_contract, make_visit


def test_required_visits_sums_batches_and_contracts():
    contracts = [
        make_contract(
            [make_batch([1, 2], regular=4, emergency=1), make_batch([1], regular=2, batch_id=2)],
            contract_id=1,
        ),
        make_contract([make_batch([1], regular=6, emergency=2, batch_id=3)], contract_id=2),
    ]

    req = required_visits(contracts, 1, 2025)

    assert req.regular == 12
    assert req.emergency == 3
    assert required_visits(contracts, 2, 2025).regular == 4


def test_required_visits_ignores_archived_and_other_years():
    contracts = [
        make_contract([make_batch([1], regular=4)], contract_id=1, archived=True),
        make_contract(
            [make_batch([1], regular=3)],
            contract_id=2,
            start=date(2024, 1, 1),
            end=date(2024, 12, 31),
        ),
    ]

    assert required_visits(contracts, 1, 2025).regular == 0
    assert required_visits(contracts, 1, 2024).regular == 3


def test_first_matching_batch_prefers_contract_active_on_date():
    old = make_contract(
        [make_batch([1], batch_id=1)], contract_id=1, start=date(2024, 1, 1), end=date(2024, 12, 31)
    )
    current = make_contract([make_batch([1], batch_id=2)], contract_id=2)

    assert first_matching_batch([old, current], 1).contract is old
    match = first_matching_batch([old, current], 1, on=date(2025, 3, 1))
    assert match.contract is current
    assert match.batch.id == 2
    assert first_matching_batch([old, current], 99) is None


def test_contract_window_clamps_to_one_year_before_today():
    contract = make_contract([make_batch([1])], start=date(2024, 6, 1), end=date(2026, 5, 31))

    assert contract_year_window(contract, 2025) == (date(2025, 1, 1), date(2025, 12, 31))
    assert contract_window(contract, 2025, today=date(2025, 1, 1)) == (
        date(2025, 1, 1),
        date(2025, 12, 31),
    )
    assert contract_window(contract, 2025, today=date(2026, 3, 1)) == (
        date(2025, 3, 1),
        date(2025, 12, 31),
    )
    assert contract_window(contract, 2025, today=date(2027, 6, 1)) is None


def test_batch_services_reads_flags():
    assert batch_services(make_batch([1])) == {
        "fire_extinguisher": True,
        "alarm_system": True,
        "fire_suppression": False,
        "gas_system": False,
        "foam_system": False,
    }


def test_completion_ratio_only_counts_completed_visits_inside_period():
    contract = make_contract([make_batch([1], regular=4)])
    visits = [
        make_visit(1, scheduled_date="04-Jan-2025", status="completed"),
        make_visit(2, scheduled_date="05-Apr-2025", status="completed"),
        make_visit(3, scheduled_date="05-Jul-2025", status="scheduled"),
        make_visit(4, scheduled_date="04-Jan-2026", status="completed"),
        make_visit(5, scheduled_date="Invalid Date", status="completed"),
    ]

    assert completion_ratio(contract, 1, visits) == 0.5
    assert completion_ratio(contract, 2, visits) == 1.0


def test_batches_covering_branch_in_contract_then_batch_order():
    first = make_batch([1, 2], batch_id=1)
    second = make_batch([2], batch_id=2)
    third = make_batch([2], batch_id=3)
    contracts = [
        make_contract([first, second], contract_id=1),
        make_contract([make_batch([2], batch_id=4)], contract_id=2, archived=True),
        make_contract([third], contract_id=3),
    ]

    assert [b.id for b in batches_covering_branch(contracts, 2)] == [1, 2, 3]
    assert [b.id for b in batches_covering_branch(contracts, 1)] == [1]
