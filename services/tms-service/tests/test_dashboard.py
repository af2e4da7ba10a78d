from datetime import timedelta
import pytest
from httpx import AsyncClient

from app import models
from app.services.dashboard import DashboardAggregator, DashboardFilters
from conftest import TODAY


@pytest.mark.asyncio
async def test_dashboard_requires_admin(client: AsyncClient, auth_headers):
    response = await client.get("/api/dashboard", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_budget_summary_identity(client: AsyncClient, admin_headers, make_project):
    await make_project(project_budget=1000, status="completed")
    await make_project(project_budget=500)
    await make_project(project_budget=250.5)

    response = await client.get("/api/dashboard", headers=admin_headers)

    assert response.status_code == 200
    budget = response.json()["budget_summary"]
    assert budget["total_budget"] == 1750.5
    assert budget["completed_budget"] == 1000
    assert budget["remaining_budget"] == budget["total_budget"] - budget["completed_budget"]


@pytest.mark.asyncio
async def test_status_histograms_use_effective_status(db_session, make_project, make_task):
    project = await make_project()
    await make_project(status="completed")
    await make_project(start_date=TODAY - timedelta(days=9), due_date=TODAY - timedelta(days=1))

    await make_task(project, status="completed")
    await make_task(project, due_date=TODAY - timedelta(days=2))
    await make_task(project, due_date=TODAY - timedelta(days=1))
    await make_task(project)

    aggregator = DashboardAggregator(db_session, TODAY)
    filters = DashboardFilters()

    projects = {row["status"]: row["count"] for row in await aggregator.project_summary()}
    assert projects == {"completed": 1, "in progress": 1, "overdue": 1}

    tasks = {row["status"]: row["count"] for row in await aggregator.task_summary(filters)}
    assert tasks == {"completed": 1, "overdue": 2, "pending": 1}

    counts = await aggregator.counts(DashboardFilters(task_status="overdue"))
    assert counts["tasks"] == 2
    assert counts["projects"] == 3


@pytest.mark.asyncio
async def test_user_summary(db_session, make_project, make_task, test_user, admin_user):
    project = await make_project()
    await make_task(project, status="completed")
    await make_task(project, due_date=TODAY - timedelta(days=1))
    await make_task(project)

    aggregator = DashboardAggregator(db_session, TODAY)
    summary = {row["user_id"]: row for row in await aggregator.user_summary(DashboardFilters())}

    assert summary[test_user.id]["completed"] == 1
    assert summary[test_user.id]["overdue"] == 1
    assert summary[test_user.id]["pending"] == 1
    assert summary[admin_user.id]["completed"] == 0

    only = await aggregator.user_summary(DashboardFilters(user_id=admin_user.id))
    assert [row["user_id"] for row in only] == [admin_user.id]


@pytest.mark.asyncio
async def test_client_summary(db_session, client_record, make_project):
    idle = models.Client(name="Idle Ltd", email="idle@example.com", address="Nowhere 1", phone_number_one="1234567890")
    db_session.add(idle)
    await db_session.commit()
    await make_project()
    await make_project(status="completed")

    result = await DashboardAggregator(db_session, TODAY).client_summary()

    by_name = {c["name"]: c for c in result["clients"]}
    assert by_name[client_record.name]["total_projects"] == 2
    assert by_name[client_record.name]["ongoing_projects"] == 1
    assert by_name[client_record.name]["verified_projects"] == 1
    assert by_name["Idle Ltd"]["not_in_project"] is True
    assert result["totals"] == {"ongoing_clients": 1, "verified_clients": 1, "not_in_project_clients": 1}


@pytest.mark.asyncio
async def test_dashboard_filters_and_recent_tasks(client: AsyncClient, admin_headers, make_project, make_task):
    project = await make_project()
    for _ in range(12):
        await make_task(project)
    await make_task(project, status="completed")

    response = await client.get(
        "/api/dashboard", params={"task_status": "pending"}, headers=admin_headers
    )

    body = response.json()
    assert body["counts"]["tasks"] == 12
    assert len(body["recent_tasks"]) == 10
    assert all(t["status"] == "pending" for t in body["recent_tasks"])

    everything = await client.get("/api/dashboard", params={"task_status": "all"}, headers=admin_headers)
    assert everything.json()["counts"]["tasks"] == 13


@pytest.mark.asyncio
async def test_dashboard_failure_returns_500(client: AsyncClient, admin_headers, monkeypatch):
    async def boom(self, filters=None):
        raise RuntimeError("database went away")

    monkeypatch.setattr(DashboardAggregator, "summary", boom)

    response = await client.get("/api/dashboard", headers=admin_headers)

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to fetch dashboard summary"


@pytest.mark.asyncio
async def test_user_summary_ignores_task_filters(db_session, make_project, make_task, test_user):
    project = await make_project()
    await make_task(project, status="completed")
    await make_task(project)

    aggregator = DashboardAggregator(db_session, TODAY)
    filters = DashboardFilters(task_status="completed")

    assert [row["count"] for row in await aggregator.task_summary(filters)] == [1]
    summary = {row["user_id"]: row for row in await aggregator.user_summary(filters)}
    assert summary[test_user.id]["completed"] == 1
    assert summary[test_user.id]["pending"] == 1
