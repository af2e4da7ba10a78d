from datetime import timedelta
import pytest
from httpx import AsyncClient

from app.services.projects import OPEN_TASKS_MESSAGE, TASKS_PAST_DUE_MESSAGE
from conftest import TODAY


def _project_payload(client_record, department, members=(), **overrides):
    payload = {
        "name": "Website Redesign",
        "description": "New marketing site",
        "client_id": client_record.id,
        "start_date": (TODAY - timedelta(days=1)).isoformat(),
        "due_date": (TODAY + timedelta(days=20)).isoformat(),
        "project_budget": 2500,
        "status": "Pending",
        "priority": "High",
        "department_ids": [department.id],
        "member_ids": [m.id for m in members],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_project(client: AsyncClient, admin_headers, client_record, department, test_user, notifier):
    """Admin creates a project; members get a welcome email"""
    response = await client.post(
        "/api/projects/",
        json=_project_payload(client_record, department, members=[test_user]),
        headers=admin_headers
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "in progress"
    assert data["priority"] == "high"
    assert data["progress"] == "No tasks assigned"
    assert data["total_tasks"] == 0
    assert data["client"]["name"] == client_record.name
    assert [m["id"] for m in data["members"]] == [test_user.id]

    assert len(notifier.sent) == 1
    assert notifier.sent[0].to == [test_user.email]


@pytest.mark.asyncio
async def test_create_project_requires_admin(client: AsyncClient, auth_headers, client_record, department):
    response = await client.post(
        "/api/projects/", json=_project_payload(client_record, department), headers=auth_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_project_rejects_due_before_start(client: AsyncClient, admin_headers, client_record, department):
    payload = _project_payload(
        client_record, department,
        start_date=TODAY.isoformat(),
        due_date=(TODAY - timedelta(days=1)).isoformat()
    )
    response = await client.post("/api/projects/", json=payload, headers=admin_headers)

    assert response.status_code == 400
    assert "Due date must be after start date" in response.json()["detail"]


@pytest.mark.asyncio
async def test_create_project_unknown_department(client: AsyncClient, admin_headers, client_record, department):
    payload = _project_payload(client_record, department, department_ids=[department.id, 999])
    response = await client.post("/api/projects/", json=payload, headers=admin_headers)

    assert response.status_code == 400
    assert "999" in response.json()["detail"]


@pytest.mark.asyncio
async def test_read_project_not_found(client: AsyncClient, auth_headers):
    response = await client.get("/api/projects/12345", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_projects_filters_by_effective_status(client: AsyncClient, auth_headers, make_project):
    late = await make_project(name="Late", start_date=TODAY - timedelta(days=20), due_date=TODAY - timedelta(days=2))
    await make_project(name="Running")
    await make_project(name="Done", status="completed", due_date=TODAY - timedelta(days=1))

    response = await client.get("/api/projects/", params={"status": "overdue"}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["total"] == 1
    assert body["data"][0]["id"] == late.id
    assert body["data"][0]["status"] == "overdue"

    response = await client.get("/api/projects/", params={"status": "all"}, headers=auth_headers)
    assert response.json()["meta"]["total"] == 3


@pytest.mark.asyncio
async def test_list_projects_pagination(client: AsyncClient, auth_headers, make_project):
    for _ in range(3):
        await make_project()

    response = await client.get("/api/projects/", params={"page": 2, "limit": 2}, headers=auth_headers)

    meta = response.json()["meta"]
    assert meta == {"total": 3, "page": 2, "limit": 2, "total_pages": 2}
    assert len(response.json()["data"]) == 1


@pytest.mark.asyncio
async def test_progress_counts_open_tasks(client: AsyncClient, auth_headers, make_project, make_task):
    project = await make_project()
    await make_task(project, status="completed")
    await make_task(project)
    await make_task(project)

    response = await client.get(f"/api/projects/{project.id}", headers=auth_headers)

    data = response.json()
    assert data["total_tasks"] == 3
    assert data["completed_tasks"] == 1
    assert data["progress"] == "2 open tasks"


@pytest.mark.asyncio
async def test_cannot_complete_project_with_open_tasks(
    client: AsyncClient, admin_headers, make_project, make_task, notifier
):
    project = await make_project()
    await make_task(project)

    response = await client.put(f"/api/projects/{project.id}", json={"status": "completed"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == OPEN_TASKS_MESSAGE
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_complete_project_notifies_members(
    client: AsyncClient, admin_headers, make_project, make_task, test_user, notifier
):
    project = await make_project()
    await make_task(project, status="completed")

    response = await client.put(f"/api/projects/{project.id}", json={"status": "Completed"}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["progress"] == "0 open tasks"
    assert len(notifier.sent) == 1
    assert notifier.sent[0].to == [test_user.email]


@pytest.mark.asyncio
async def test_delete_project_cascades_tasks(client: AsyncClient, admin_headers, make_project, make_task):
    project = await make_project()
    task = await make_task(project)

    response = await client.delete(f"/api/projects/{project.id}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get(f"/api/tasks/{task.id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bulk_delete_projects(client: AsyncClient, admin_headers, make_project):
    projects = [await make_project() for _ in range(3)]
    ids = [p.id for p in projects] + [9999]

    response = await client.request("DELETE", "/api/projects/", json={"ids": ids}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"message": "Successfully deleted 3 project(s).", "deleted": 3}

    listing = await client.get("/api/projects/", headers=admin_headers)
    assert listing.json()["meta"]["total"] == 0


@pytest.mark.asyncio
async def test_bulk_delete_projects_none_found(client: AsyncClient, admin_headers):
    response = await client.request("DELETE", "/api/projects/", json={"ids": [4040, 4041]}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_bulk_delete_projects_empty(client: AsyncClient, admin_headers):
    response = await client.request("DELETE", "/api/projects/", json={"ids": []}, headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_project_due_date_cannot_precede_its_tasks(
    client: AsyncClient, admin_headers, make_project, make_task
):
    project = await make_project()
    await make_task(project, due_date=TODAY + timedelta(days=20))

    response = await client.put(
        f"/api/projects/{project.id}",
        json={"due_date": (TODAY + timedelta(days=10)).isoformat()},
        headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["detail"] == TASKS_PAST_DUE_MESSAGE

    response = await client.put(
        f"/api/projects/{project.id}",
        json={"due_date": (TODAY + timedelta(days=20)).isoformat()},
        headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["due_date"] == (TODAY + timedelta(days=20)).isoformat()
