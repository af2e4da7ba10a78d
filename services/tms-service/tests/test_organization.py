import pytest
from httpx import AsyncClient


# --- DEPARTAMENTOS ---

@pytest.mark.asyncio
async def test_create_department_normalizes_name(client: AsyncClient, admin_headers):
    response = await client.post("/api/departments/", json={"name": "  Design "}, headers=admin_headers)

    assert response.status_code == 201
    assert response.json()["name"] == "design"
    assert response.json()["color"] == "#3B82F6"


@pytest.mark.asyncio
async def test_duplicate_department_name(client: AsyncClient, admin_headers, department):
    response = await client.post("/api/departments/", json={"name": "Engineering"}, headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_department_in_use_cannot_be_deleted(client: AsyncClient, admin_headers, department, test_user):
    response = await client.delete(f"/api/departments/{department.id}", headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["detail"] == "Department is in use by users or projects"


@pytest.mark.asyncio
async def test_update_and_delete_department(client: AsyncClient, admin_headers):
    created = await client.post("/api/departments/", json={"name": "ops"}, headers=admin_headers)
    department_id = created.json()["id"]

    updated = await client.put(
        f"/api/departments/{department_id}", json={"color": "#000000"}, headers=admin_headers
    )
    assert updated.json()["color"] == "#000000"

    deleted = await client.delete(f"/api/departments/{department_id}", headers=admin_headers)
    assert deleted.status_code == 200

    missing = await client.get(f"/api/departments/{department_id}", headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_regular_user_reads_but_cannot_write_departments(client: AsyncClient, auth_headers, department):
    listing = await client.get("/api/departments/", headers=auth_headers)
    assert listing.json()["meta"]["total"] == 1

    response = await client.post("/api/departments/", json={"name": "hr"}, headers=auth_headers)
    assert response.status_code == 403


# --- CLIENTES ---

def _client_payload(**overrides):
    payload = {
        "name": "globex corporation",
        "email": "Hello@Globex.example.com",
        "address": "742 Evergreen Terrace",
        "phone_number_one": "+15551234567",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_client(client: AsyncClient, admin_headers):
    response = await client.post("/api/clients/", json=_client_payload(), headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Globex Corporation"
    assert data["email"] == "hello@globex.example.com"


@pytest.mark.asyncio
async def test_duplicate_client(client: AsyncClient, admin_headers):
    await client.post("/api/clients/", json=_client_payload(), headers=admin_headers)

    same_email = await client.post("/api/clients/", json=_client_payload(name="Other"), headers=admin_headers)
    assert same_email.status_code == 400
    assert same_email.json()["detail"] == "Client already exists"

    same_name = await client.post(
        "/api/clients/", json=_client_payload(email="other@globex.example.com"), headers=admin_headers
    )
    assert same_name.status_code == 400


@pytest.mark.asyncio
async def test_client_phone_validation(client: AsyncClient, admin_headers):
    response = await client.post("/api/clients/", json=_client_payload(phone_number_one="12-34"), headers=admin_headers)

    assert response.status_code == 400
    assert "phone_number_one" in response.json()["detail"]


@pytest.mark.asyncio
async def test_client_with_projects_cannot_be_deleted(client: AsyncClient, admin_headers, client_record, make_project):
    await make_project()

    response = await client.delete(f"/api/clients/{client_record.id}", headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_search_and_update_client(client: AsyncClient, admin_headers, client_record):
    listing = await client.get("/api/clients/", params={"search": "acme"}, headers=admin_headers)
    assert [c["id"] for c in listing.json()["data"]] == [client_record.id]

    updated = await client.put(
        f"/api/clients/{client_record.id}", json={"address": "1 Infinite Loop"}, headers=admin_headers
    )
    assert updated.status_code == 200
    assert updated.json()["address"] == "1 Infinite Loop"
    assert updated.json()["name"] == "Acme Corp"
