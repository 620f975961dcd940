import pytest
from datetime import date
from unittest.mock import AsyncMock, MagicMock

from app.services.visit_query_service import apply_visit_filters, load_planning_snapshot
from tests.utils.factories import make_batch, make_branch, make_contract, make_visit


@pytest.mark.asyncio
async def test_load_planning_snapshot_reads_contracts_then_branches():
    db = AsyncMock()
    contract = make_contract([make_batch([1, 2])])
    contracts_result = MagicMock()
    contracts_result.scalars.return_value.unique.return_value.all.return_value = [contract]
    branches_result = MagicMock()
    branches_result.scalars.return_value.all.return_value = [
        make_branch(1),
        make_branch(2),
        make_branch(3, company_id=2),
    ]
    db.execute.side_effect = [contracts_result, branches_result]

    snapshot = await load_planning_snapshot(db)

    assert db.execute.await_count == 2
    assert snapshot.contracts == [contract]
    assert [b.id for b in snapshot.branches_for(company_id=1)] == [1, 2]
    assert [b.id for b in snapshot.branches_for(branch_ids=[3])] == [3]
    assert [b.id for b in snapshot.branches_for()] == [1, 2, 3]


def test_apply_visit_filters():
    visits = [
        make_visit(1, scheduled_date="04-Jan-2025"),
        make_visit(2, branch_id=2, scheduled_date="05-Apr-2025", status="completed"),
        make_visit(3, scheduled_date="Invalid Date", type="emergency"),
    ]

    assert [v.id for v in apply_visit_filters(visits, branch_id=1)] == [1, 3]
    assert [v.id for v in apply_visit_filters(visits, status="completed")] == [2]
    assert [v.id for v in apply_visit_filters(visits, visit_type="emergency")] == [3]
    assert [
        v.id for v in apply_visit_filters(visits, start=date(2025, 1, 1), end=date(2025, 3, 31))
    ] == [1]
