from datetime import timedelta
import pytest
from httpx import AsyncClient

from conftest import TODAY


# --- REUNIONES ---

def _meeting_payload(department, **overrides):
    payload = {
        "title": "Sprint Planning",
        "description": "Plan the next sprint",
        "agenda": "Backlog review",
        "date": (TODAY + timedelta(days=1)).isoformat(),
        "start_time": "10:00:00",
        "end_time": "11:00:00",
        "department_ids": [department.id],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_meeting_invites_whole_department(
    client: AsyncClient, auth_headers, department, admin_user, test_user, notifier
):
    response = await client.post("/api/meetings/", json=_meeting_payload(department), headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "Scheduled"
    assert data["created_by_id"] == test_user.id
    assert sorted(u["id"] for u in data["invited_users"]) == sorted([admin_user.id, test_user.id])

    assert notifier.subjects() == ["Meeting Invitation: Sprint Planning"]
    assert sorted(notifier.sent[0].to) == sorted([admin_user.email, test_user.email])


@pytest.mark.asyncio
async def test_meeting_explicit_invitees(client: AsyncClient, auth_headers, department, admin_user, notifier):
    payload = _meeting_payload(department, invited_user_ids=[admin_user.id])
    response = await client.post("/api/meetings/", json=payload, headers=auth_headers)

    assert [u["id"] for u in response.json()["invited_users"]] == [admin_user.id]
    assert notifier.sent[0].to == [admin_user.email]


@pytest.mark.asyncio
async def test_meeting_schedule_validation(client: AsyncClient, auth_headers, department):
    past = _meeting_payload(department, date=(TODAY - timedelta(days=1)).isoformat())
    response = await client.post("/api/meetings/", json=past, headers=auth_headers)
    assert response.status_code == 400
    assert "Meeting date cannot be in the past" in response.json()["detail"]

    backwards = _meeting_payload(department, start_time="15:00:00", end_time="14:00:00")
    response = await client.post("/api/meetings/", json=backwards, headers=auth_headers)
    assert response.status_code == 400
    assert "End time must be after start time" in response.json()["detail"]


@pytest.mark.asyncio
async def test_meeting_reschedule_resends_invitation(client: AsyncClient, auth_headers, department, test_user, notifier):
    created = await client.post("/api/meetings/", json=_meeting_payload(department), headers=auth_headers)
    meeting_id = created.json()["id"]

    bad = await client.put(f"/api/meetings/{meeting_id}", json={"end_time": "09:00:00"}, headers=auth_headers)
    assert bad.status_code == 400

    response = await client.put(
        f"/api/meetings/{meeting_id}",
        json={"date": (TODAY + timedelta(days=3)).isoformat()},
        headers=auth_headers
    )
    assert response.status_code == 200
    assert len(notifier.sent) == 2

    listing = await client.get(
        "/api/meetings/", params={"date": (TODAY + timedelta(days=3)).isoformat()}, headers=auth_headers
    )
    assert [m["id"] for m in listing.json()["data"]] == [meeting_id]


# --- EVENTOS ---

@pytest.mark.asyncio
async def test_event_notifies_admins_only(client: AsyncClient, auth_headers, admin_user, test_user, notifier):
    payload = {
        "title": "Launch Party",
        "date": (TODAY + timedelta(days=7)).isoformat(),
        "start_time": "18:00:00",
        "end_time": "21:00:00",
        "notify_admins": True,
    }
    response = await client.post("/api/events/", json=payload, headers=auth_headers)

    assert response.status_code == 201
    assert response.json()["type"] == "Event"
    assert notifier.subjects() == ["New Event: Launch Party"]
    assert notifier.sent[0].to == [admin_user.email]


@pytest.mark.asyncio
async def test_event_notifies_everyone(client: AsyncClient, auth_headers, admin_user, test_user, notifier):
    payload = {
        "title": "Office Closed",
        "date": (TODAY + timedelta(days=2)).isoformat(),
        "start_time": "00:00:00",
        "end_time": "23:59:00",
        "type": "Holiday",
    }
    await client.post("/api/events/", json=payload, headers=auth_headers)

    assert sorted(notifier.sent[0].to) == sorted([admin_user.email, test_user.email])


# --- REPORTES ---

@pytest.mark.asyncio
async def test_report_scope_reference_must_exist(client: AsyncClient, auth_headers):
    payload = {"title": "Q3", "content": "Numbers", "scope": "project", "project_id": 999}
    response = await client.post("/api/reports/", json=payload, headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["detail"] == "Project not found"


@pytest.mark.asyncio
async def test_report_scope_reference_required(client: AsyncClient, auth_headers):
    payload = {"title": "Q3", "content": "Numbers", "scope": "client"}
    response = await client.post("/api/reports/", json=payload, headers=auth_headers)

    assert response.status_code == 400
    assert "client_id is required" in response.json()["detail"]


@pytest.mark.asyncio
async def test_report_sent_and_approved(client: AsyncClient, auth_headers, make_project, test_user, notifier):
    project = await make_project()
    payload = {
        "title": "Q3 Status",
        "content": "All green",
        "scope": "Project",
        "project_id": project.id,
        "email_recipients": ["board@example.com"],
    }
    response = await client.post("/api/reports/", json=payload, headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "draft"
    assert data["sent_at"] is not None
    assert data["created_by"]["id"] == test_user.id
    assert notifier.subjects() == ["Q3 Status Report"]

    approved = await client.put(f"/api/reports/{data['id']}", json={"status": "approved"}, headers=auth_headers)
    assert approved.json()["approved_at"] is not None
    assert approved.json()["reviewed_at"] is not None

    listing = await client.get("/api/reports/", params={"status": "approved"}, headers=auth_headers)
    assert listing.json()["meta"]["total"] == 1


@pytest.mark.asyncio
async def test_report_without_recipients_is_not_sent(client: AsyncClient, auth_headers, department, notifier):
    payload = {"title": "Headcount", "content": "12", "scope": "department", "department_id": department.id}
    response = await client.post("/api/reports/", json=payload, headers=auth_headers)

    assert response.json()["sent_at"] is None
    assert notifier.sent == []


# --- CONTACTOS ---

def _internal_contact(department, **overrides):
    payload = {
        "contact_type": "internal",
        "full_name": "Grace Hopper",
        "email": "grace@example.com",
        "address": "Arlington, VA",
        "phone": "+15559876543",
        "department_id": department.id,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_external_contact_requires_company_fields(client: AsyncClient, auth_headers):
    payload = {"contact_type": "external", "company": "Initech"}
    response = await client.post("/api/contacts/", json=payload, headers=auth_headers)

    assert response.status_code == 400
    assert "Missing required fields for external contact" in response.json()["detail"]
    assert "contact_person" in response.json()["detail"]


@pytest.mark.asyncio
async def test_internal_contact_department_checked(client: AsyncClient, auth_headers, department):
    response = await client.post("/api/contacts/", json=_internal_contact(department), headers=auth_headers)
    assert response.status_code == 201
    assert response.json()["contact_type"] == "internal"

    unknown = await client.post(
        "/api/contacts/", json=_internal_contact(department, department_id=404), headers=auth_headers
    )
    assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_contact_update_validates_result(client: AsyncClient, auth_headers, department):
    created = await client.post("/api/contacts/", json=_internal_contact(department), headers=auth_headers)
    contact_id = created.json()["id"]

    switched = await client.put(
        f"/api/contacts/{contact_id}", json={"contact_type": "external"}, headers=auth_headers
    )
    assert switched.status_code == 400

    renamed = await client.put(f"/api/contacts/{contact_id}", json={"full_name": "Rear Admiral Hopper"}, headers=auth_headers)
    assert renamed.status_code == 200
    assert renamed.json()["full_name"] == "Rear Admiral Hopper"


@pytest.mark.asyncio
async def test_bulk_delete_contacts(client: AsyncClient, auth_headers, department):
    ids = []
    for email in ("a@example.com", "b@example.com"):
        created = await client.post(
            "/api/contacts/", json=_internal_contact(department, email=email), headers=auth_headers
        )
        ids.append(created.json()["id"])

    response = await client.request("DELETE", "/api/contacts/bulk-delete", json={"ids": ids}, headers=auth_headers)
    assert response.json()["deleted"] == 2

    listing = await client.get("/api/contacts/", headers=auth_headers)
    assert listing.json()["meta"]["total"] == 0


# --- COMENTARIOS ---

@pytest.mark.asyncio
async def test_comment_threads_stay_one_level(
    client: AsyncClient, auth_headers, admin_headers, make_project, admin_user, notifier
):
    project = await make_project()
    url = f"/api/projects/{project.id}/comments"

    root = await client.post(url, json={"content": "Kickoff notes"}, headers=auth_headers)
    assert root.status_code == 201
    assert notifier.sent[0].to == [admin_user.email]

    reply = await client.post(
        url, json={"content": "Thanks", "parent_comment_id": root.json()["id"]}, headers=admin_headers
    )
    nested = await client.post(
        url, json={"content": "Agreed", "parent_comment_id": reply.json()["id"]}, headers=auth_headers
    )
    assert nested.json()["parent_comment_id"] == root.json()["id"]

    listing = await client.get(url, headers=auth_headers)
    threads = listing.json()
    assert len(threads) == 1
    assert sorted(r["id"] for r in threads[0]["replies"]) == sorted([reply.json()["id"], nested.json()["id"]])


@pytest.mark.asyncio
async def test_task_comment_parent_must_match_thread(client: AsyncClient, auth_headers, make_project, make_task):
    project = await make_project()
    task = await make_task(project)
    on_project = await client.post(f"/api/projects/{project.id}/comments", json={"content": "Hi"}, headers=auth_headers)

    response = await client.post(
        f"/api/tasks/{task.id}/comments",
        json={"content": "Wrong thread", "parent_comment_id": on_project.json()["id"]},
        headers=auth_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_delete_comment_permissions(client: AsyncClient, auth_headers, admin_headers, make_project):
    project = await make_project()
    url = f"/api/projects/{project.id}/comments"
    admins = await client.post(url, json={"content": "Admin only"}, headers=admin_headers)
    users = await client.post(url, json={"content": "Mine"}, headers=auth_headers)

    forbidden = await client.delete(f"/api/comments/{admins.json()['id']}", headers=auth_headers)
    assert forbidden.status_code == 403

    allowed = await client.delete(f"/api/comments/{users.json()['id']}", headers=admin_headers)
    assert allowed.status_code == 200

    missing = await client.delete(f"/api/comments/{users.json()['id']}", headers=admin_headers)
    assert missing.status_code == 404
