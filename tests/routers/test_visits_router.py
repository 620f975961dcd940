import pytest
from fastapi import status

from app.routers.errors import planning_http_error, store_http_error
from app.services.planning_errors import (
    CapacityConflict,
    PersistenceError,
    UnparseableDate,
)
from app.services.visit_store import KIND_PERSISTENCE, StoreResult


async def _create(client, **overrides):
    payload = {"branch_id": 1, "contract_id": 1, "scheduled_date": "08-Mar-2025"}
    payload.update(overrides)
    return await client.post("/visits", json=payload)


@pytest.mark.asyncio
async def test_health(async_client):
    resp = await async_client.get("/health")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_create_visit_normalizes_iso_date(async_client, planning_env):
    resp = await _create(async_client, scheduled_date="2025-03-07", created_by="ops@example.com")

    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["scheduled_date"] == "07-Mar-2025"
    assert body["scheduled_on"] == "2025-03-07"
    assert body["visit_code"] == f"VISIT-2025-{body['id']:04d}"
    assert planning_env.session.actions == ["visit_created"]
    assert planning_env.session.added[0].actor == "ops@example.com"


@pytest.mark.asyncio
async def test_create_visit_rejects_bad_input(async_client, planning_env):
    bad_date = await _create(async_client, scheduled_date="someday")
    uncovered = await _create(async_client, branch_id=3)

    assert bad_date.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert uncovered.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert "not covered" in uncovered.json()["detail"]
    assert planning_env.session.added == []


@pytest.mark.asyncio
async def test_list_and_get_visits(async_client, planning_env):
    await _create(async_client)
    await _create(async_client, branch_id=2, scheduled_date="09-Mar-2025")

    by_branch = await async_client.get("/visits", params={"branch_id": 2})
    by_range = await async_client.get(
        "/visits", params={"start": "2025-03-09", "status": "scheduled"}
    )
    missing = await async_client.get("/visits/99")

    assert [v["branch_id"] for v in by_branch.json()] == [2]
    assert [v["scheduled_date"] for v in by_range.json()] == ["09-Mar-2025"]
    assert missing.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_update_and_delete_visit(async_client, planning_env):
    visit_id = (await _create(async_client)).json()["id"]

    updated = await async_client.put(
        f"/visits/{visit_id}", json={"notes": "ask for the key at reception"}
    )
    deleted = await async_client.delete(f"/visits/{visit_id}", params={"actor": "ops"})
    listed = await async_client.get("/visits")
    archived = await async_client.get("/visits", params={"include_archived": True})

    assert updated.json()["notes"] == "ask for the key at reception"
    assert deleted.status_code == status.HTTP_204_NO_CONTENT
    assert listed.json() == []
    assert archived.json()[0]["is_archived"] is True
    assert planning_env.session.actions == ["visit_created", "visit_updated", "visit_archived"]


@pytest.mark.asyncio
async def test_visit_lifecycle_endpoints(async_client, planning_env):
    visit_id = (await _create(async_client)).json()["id"]

    started = await async_client.post(f"/visits/{visit_id}/start")
    completed = await async_client.post(
        f"/visits/{visit_id}/complete",
        json={
            "results": {"overall_status": "passed", "issues": ["expired extinguisher"]},
            "completed_date": "2025-03-08",
        },
    )
    again = await async_client.post(
        f"/visits/{visit_id}/cancel", json={"reason": "duplicate"}
    )

    assert started.json()["status"] == "in_progress"
    assert completed.json()["status"] == "completed"
    assert completed.json()["completed_date"] == "08-Mar-2025"
    assert completed.json()["results"]["issues"] == ["expired extinguisher"]
    assert again.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


async def _complete(client, visit_id):
    return await client.post(
        f"/visits/{visit_id}/complete", json={"results": {"overall_status": "passed"}}
    )


@pytest.mark.asyncio
async def test_deleting_completed_visit_needs_confirmation(async_client, planning_env):
    visit_id = (await _create(async_client)).json()["id"]
    await _complete(async_client, visit_id)

    hard = await async_client.delete(f"/visits/{visit_id}", params={"hard": True})
    soft = await async_client.delete(f"/visits/{visit_id}")
    hard_confirmed = await async_client.delete(
        f"/visits/{visit_id}", params={"hard": True, "confirm": True}
    )
    remaining = await async_client.get("/visits")

    assert hard.status_code == status.HTTP_409_CONFLICT
    assert soft.status_code == status.HTTP_409_CONFLICT
    assert hard_confirmed.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert [v["id"] for v in remaining.json()] == [visit_id]
    assert remaining.json()[0]["status"] == "completed"

    archived = await async_client.delete(f"/visits/{visit_id}", params={"confirm": True})

    assert archived.status_code == status.HTTP_204_NO_CONTENT
    assert (await planning_env.store.get(visit_id)).data.is_archived
    assert planning_env.session.actions[-1] == "visit_archived"


@pytest.mark.asyncio
async def test_update_cannot_change_status(async_client, planning_env):
    visit_id = (await _create(async_client)).json()["id"]
    await _complete(async_client, visit_id)

    resp = await async_client.put(f"/visits/{visit_id}", json={"status": "scheduled"})
    current = await async_client.get(f"/visits/{visit_id}")

    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert current.json()["status"] == "completed"
    assert "visit_updated" not in planning_env.session.actions


@pytest.mark.asyncio
async def test_reschedule_visit(async_client, planning_env):
    visit_id = (await _create(async_client)).json()["id"]

    resp = await async_client.post(
        f"/visits/{visit_id}/reschedule",
        json={"new_date": "15/03/2025", "reason": "branch closed"},
    )

    assert resp.json()["scheduled_date"] == "15-Mar-2025"
    assert resp.json()["status"] == "rescheduled"


@pytest.mark.asyncio
async def test_move_visit_to_friday_is_rejected(async_client, planning_env):
    visit_id = (await _create(async_client)).json()["id"]

    resp = await async_client.post(
        f"/visits/{visit_id}/move", json={"target_date": "2025-03-07"}
    )

    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert "Friday" in resp.json()["detail"]


def test_error_mapping():
    assert planning_http_error(CapacityConflict("10-Mar-2025", 5, 5)).status_code == 409
    assert planning_http_error(PersistenceError("down")).status_code == 503
    assert planning_http_error(UnparseableDate("Invalid Date")).status_code == 422
    failed = StoreResult.fail("down", kind=KIND_PERSISTENCE)
    assert store_http_error(failed).status_code == 503
