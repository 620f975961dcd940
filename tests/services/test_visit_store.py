from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from app.services.visit_store import (
    KIND_NOT_FOUND,
    KIND_PERSISTENCE,
    KIND_VALIDATION,
    InMemoryVisitStore,
    SqlVisitStore,
    VisitDraft,
)
from tests.utils.factories import make_batch, make_contract, make_visit


def _store(visits=()):
    contracts = [
        make_contract([make_batch([1, 2])], contract_id=1),
        make_contract([make_batch([1])], contract_id=2, archived=True),
    ]
    return InMemoryVisitStore(contracts=contracts, visits=visits)


def _payload(**overrides):
    payload = {"branch_id": 1, "contract_id": 1, "scheduled_date": "5-jan-25"}
    payload.update(overrides)
    return payload


async def test_create_normalizes_and_assigns_code():
    store = _store()

    result = await store.create(_payload())

    assert result.success
    visit = result.data
    assert visit.id == 1
    assert visit.scheduled_date == "05-Jan-2025"
    assert visit.visit_code == "VISIT-2025-0001"
    assert visit.company_id == 1
    assert visit.type == "regular"
    assert visit.status == "scheduled"
    assert (await store.get(1)).data is visit


async def test_create_accepts_drafts():
    store = _store()

    result = await store.create(VisitDraft(branch_id=2, contract_id=1, scheduled_date="04-Jan-2025"))

    assert result.success
    assert result.data.branch_id == 2


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"branch_id": 3}, "not covered"),
        ({"branch_id": 1, "contract_id": 2}, "archived"),
        ({"contract_id": 99}, "not found"),
        ({"scheduled_date": "Invalid Date"}, "Unparseable"),
        ({"scheduled_date": None}, "Missing required"),
        ({"type": "urgent"}, "Invalid type"),
    ],
)
async def test_create_rejects_invalid_visits(overrides, message):
    store = _store()

    result = await store.create(_payload(**overrides))

    assert not result.success
    assert result.kind == KIND_VALIDATION
    assert message in result.error
    assert (await store.all_visits()).data == []


async def test_create_many_is_all_or_nothing():
    store = _store()

    result = await store.create_many([_payload(), _payload(branch_id=3)])

    assert not result.success
    assert (await store.all_visits(include_archived=True)).data == []


async def test_queries_exclude_archived_and_unparseable_visits():
    store = _store(
        [
            make_visit(1, scheduled_date="04-Jan-2025"),
            make_visit(2, branch_id=2, scheduled_date="Invalid Date"),
            make_visit(3, scheduled_date="06-Jan-2025", archived=True),
            make_visit(4, scheduled_date="20-Jan-2025"),
        ]
    )

    in_week = await store.visits_in_range(date(2025, 1, 1), date(2025, 1, 7))
    assert [v.id for v in in_week.data] == [1]
    assert [v.id for v in (await store.visits_for_branch(1)).data] == [1, 4]
    assert [v.id for v in (await store.visits_for_contract(1)).data] == [1, 2, 4]
    assert len((await store.all_visits(include_archived=True)).data) == 4

    created = await store.create(_payload())
    assert created.data.id == 5


async def test_update_normalizes_and_rejects_unknown_fields():
    store = _store([make_visit(1)])

    result = await store.update(1, {"scheduled_date": "7-mar-2025", "notes": "gate code 42"})
    assert result.success
    assert result.data.scheduled_date == "07-Mar-2025"

    rejected = await store.update(1, {"branch_id": 2})
    assert not rejected.success
    assert "cannot be updated" in rejected.error

    missing = await store.update(99, {"notes": "x"})
    assert missing.kind == KIND_NOT_FOUND


async def test_writes_on_archived_contract_are_rejected():
    store = _store([make_visit(1, contract_id=2)])

    assert not (await store.update(1, {"notes": "x"})).success
    assert not (await store.delete(1)).success


async def test_delete_archives_or_removes():
    store = _store([make_visit(1), make_visit(2)])

    assert (await store.delete(1, actor="planner@example.com")).success
    archived = (await store.get(1)).data
    assert archived.is_archived
    assert archived.archived_by == "planner@example.com"
    assert [v.id for v in (await store.all_visits()).data] == [2]

    assert (await store.delete(2, hard=True)).success
    assert (await store.get(2)).kind == KIND_NOT_FOUND


class _FakeResult:
    def __init__(self, rows):
        self._rows = list(rows)

    def scalars(self):
        return self

    def unique(self):
        return self

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)


class _FakeSession:
    def __init__(self, contract=None, fail_reads=False, fail_commit=False):
        self.contract = contract
        self.fail_reads = fail_reads
        self.fail_commit = fail_commit
        self.added = []
        self.commits = 0
        self.rolled_back = False

    async def execute(self, _stmt):  # type: ignore[no-untyped-def]
        if self.fail_reads:
            raise OperationalError("SELECT", {}, Exception("connection refused"))
        return _FakeResult([self.contract] if self.contract else [])

    def add_all(self, rows):
        self.added.extend(rows)

    async def flush(self):
        for idx, row in enumerate(self.added, start=1):
            if row.id is None:
                row.id = idx

    async def commit(self):
        if self.fail_commit:
            raise OperationalError("COMMIT", {}, Exception("connection reset"))
        self.commits += 1

    async def rollback(self):
        self.rolled_back = True

    async def get(self, _model, _id):
        return None


async def test_sql_store_create_flushes_and_commits():
    session = _FakeSession(contract=make_contract([make_batch([1])]))

    result = await SqlVisitStore(session).create(_payload())

    assert result.success
    assert result.data.visit_code == "VISIT-2025-0001"
    assert session.commits == 1


async def test_sql_store_reports_persistence_failures():
    session = _FakeSession(contract=make_contract([make_batch([1])]), fail_commit=True)

    result = await SqlVisitStore(session).create(_payload())

    assert not result.success
    assert result.kind == KIND_PERSISTENCE
    assert session.rolled_back


async def test_sql_store_read_failure_and_missing_visit():
    store = SqlVisitStore(_FakeSession(fail_reads=True))

    result = await store.visits_for_branch(1)
    assert result.kind == KIND_PERSISTENCE
    assert "connection refused" in result.error

    assert (await SqlVisitStore(_FakeSession()).get(5)).kind == KIND_NOT_FOUND


async def test_status_changes_only_through_lifecycle_updates():
    store = _store([make_visit(1, status="completed"), make_visit(2)])

    rejected = await store.update(1, {"status": "scheduled", "notes": "reopen"})
    assert not rejected.success
    assert "cannot be updated: status" in rejected.error
    assert (await store.get(1)).data.status == "completed"

    lifecycle = await store.update(2, {"status": "in_progress"}, lifecycle=True)
    assert lifecycle.success
    assert lifecycle.data.status == "in_progress"


class _RecordingSession(_FakeSession):
    def __init__(self, rows):
        super().__init__()
        self.rows = rows
        self.statements = []

    async def execute(self, stmt):  # type: ignore[no-untyped-def]
        self.statements.append(stmt)
        return _FakeResult(self.rows)


async def test_sql_range_query_narrows_on_year_suffix():
    session = _RecordingSession(
        [
            make_visit(1, scheduled_date="30-Dec-2025"),
            make_visit(2, scheduled_date="10-Jan-2026"),
            make_visit(3, scheduled_date="02-Jan-26"),
        ]
    )

    result = await SqlVisitStore(session).visits_in_range(date(2025, 12, 29), date(2026, 1, 4))

    assert [v.id for v in result.data] == [1, 3]
    sql = str(session.statements[0].compile(compile_kwargs={"literal_binds": True}))
    for suffix in ("%-2025", "%-25", "%-2026", "%-26"):
        assert f"LIKE '{suffix}'" in sql
