import pytest
from fastapi import status

from tests.utils.factories import make_visit


@pytest.mark.asyncio
async def test_automated_planning_preview(async_client, planning_env):
    resp = await async_client.post(
        "/planning/automated",
        json={"branch_ids": [1], "options": {"year": 2025}, "today": "2025-01-01"},
    )

    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["success"] is True
    assert body["summary"]["total_planned"] == 4
    assert [v["scheduled_date"] for v in body["planned_visits"]][0] == "04-Jan-2025"
    assert body["commit"] is None
    assert (await planning_env.store.all_visits()).data == []
    assert planning_env.session.actions == ["planning_automated_run"]


@pytest.mark.asyncio
async def test_automated_planning_commit(async_client, planning_env):
    resp = await async_client.post(
        "/planning/automated",
        json={"options": {"year": 2025, "batch_size": 10}, "today": "2025-01-01", "commit": True},
    )

    body = resp.json()
    assert body["summary"]["total_planned"] == 8
    assert body["commit"]["committed"] == 8
    assert body["commit"]["batches"] == 1
    assert len((await planning_env.store.all_visits()).data) == 8


@pytest.mark.asyncio
async def test_automated_planning_rejects_unknown_options(async_client, planning_env):
    resp = await async_client.post(
        "/planning/automated", json={"options": {"max_visit_per_day": 3}}
    )
    assert resp.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
async def test_annual_grid(async_client, planning_env):
    planning_env.store._visits[1] = make_visit(1, scheduled_date="04-Jan-2025", status="completed")

    resp = await async_client.get("/planning/annual", params={"year": 2025})

    body = resp.json()
    assert len(body["weeks"]) == 52
    assert body["weeks"][0]["branches"][0]["status"] == "done"
    assert body["summary"]["total_slots"] == 104
    assert body["summary"]["completion_percentage"] == 100


@pytest.mark.asyncio
async def test_week_and_day_views(async_client, planning_env):
    planning_env.store._visits[1] = make_visit(1, scheduled_date="02-Jan-2025")

    week = await async_client.get("/planning/week", params={"year": 2025, "week": 1})
    days = await async_client.get("/planning/week/days", params={"year": 2025, "week": 1})
    bad = await async_client.get("/planning/week", params={"year": 2025, "week": 53})

    assert week.json()["overview"]["total_visits"] == 1
    assert week.json()["week"]["branches"][0]["status"] == "planned"
    assert len(days.json()) == 7
    assert days.json()[1]["visit_count"] == 1
    assert days.json()[2]["is_working_day"] is False
    assert bad.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


@pytest.mark.asyncio
async def test_cell_click_round_trip(async_client, planning_env):
    payload = {"branch_id": 1, "year": 2025, "week_number": 10, "actor": "planner"}

    planned = await async_client.post("/planning/cell", json=payload)
    removed = await async_client.post("/planning/cell", json=payload)

    assert planned.json()["action"] == "planned"
    assert planned.json()["cell"]["visits"][0]["scheduled_date"] == "05-Mar-2025"
    assert removed.json()["action"] == "deleted"
    assert removed.json()["cell"]["status"] == "none"
    assert planning_env.session.actions == ["planning_cell_planned", "planning_cell_deleted"]


@pytest.mark.asyncio
async def test_cell_click_needs_confirmation(async_client, planning_env):
    planning_env.store._visits[1] = make_visit(1, scheduled_date="05-Mar-2025", status="completed")
    payload = {"branch_id": 1, "year": 2025, "week_number": 10}

    refused = await async_client.post("/planning/cell", json=payload)
    confirmed = await async_client.post("/planning/cell", json={**payload, "confirm": True})
    unknown = await async_client.post("/planning/cell", json={**payload, "branch_id": 9})

    assert refused.status_code == status.HTTP_409_CONFLICT
    assert confirmed.json()["action"] == "archived"
    assert unknown.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.asyncio
async def test_bulk_plan_week(async_client, planning_env):
    resp = await async_client.post(
        "/planning/bulk-plan", json={"year": 2025, "week_number": 10, "actor": "planner"}
    )

    body = resp.json()
    assert body["success_count"] == 2
    assert body["failed_branches"] == []
    assert len(body["planned_visit_ids"]) == 2
    assert planning_env.session.actions == ["planning_week_bulk_planned"]


@pytest.mark.asyncio
async def test_bulk_delete(async_client, planning_env):
    planning_env.store._visits[1] = make_visit(1, type="emergency")
    planning_env.store._visits[2] = make_visit(2)

    refused = await async_client.post("/planning/bulk-delete", json={"visit_ids": [1, 2]})
    confirmed = await async_client.post(
        "/planning/bulk-delete", json={"visit_ids": [1, 2], "confirm": True, "hard": True}
    )
    empty = await async_client.post("/planning/bulk-delete", json={"visit_ids": []})

    assert refused.status_code == status.HTTP_409_CONFLICT
    assert confirmed.json()["deleted_count"] == 2
    assert empty.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert (await planning_env.store.all_visits(include_archived=True)).data == []
