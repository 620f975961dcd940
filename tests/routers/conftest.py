from types import SimpleNamespace

import pytest

from app.deps import get_planning_snapshot, get_visit_store
from app.services.visit_query_service import PlanningSnapshot
from app.services.visit_store import InMemoryVisitStore
from db.session import get_db
from tests.utils.factories import make_batch, make_branch, make_contract


class _FakeSession:
    """Collects activity log rows instead of writing them."""

    def __init__(self):
        self.added = []
        self.commits = 0

    def add(self, obj) -> None:
        self.added.append(obj)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        return None

    @property
    def actions(self) -> list[str]:
        return [entry.action for entry in self.added]


@pytest.fixture()
def planning_env(app):
    contract = make_contract([make_batch([1, 2])])
    snapshot = PlanningSnapshot(
        contracts=[contract], branches=[make_branch(1), make_branch(2)]
    )
    store = InMemoryVisitStore(contracts=[contract])
    session = _FakeSession()

    async def _get_db():
        yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_visit_store] = lambda: store
    app.dependency_overrides[get_planning_snapshot] = lambda: snapshot
    yield SimpleNamespace(store=store, session=session, snapshot=snapshot)
    app.dependency_overrides.clear()
