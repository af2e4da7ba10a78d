import pytest
from httpx import AsyncClient

from app import models


def _register_payload(email="first.admin@example.com", **overrides):
    payload = {
        "first_name": "ada",
        "last_name": "lovelace",
        "email": email,
        "password": "supersecret1",
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_first_registered_user_is_admin(client: AsyncClient):
    first = await client.post("/api/users/register", json=_register_payload())
    second = await client.post("/api/users/register", json=_register_payload(email="Second@Example.com"))

    assert first.status_code == 201
    assert first.json()["role"] == "Admin"
    assert first.json()["first_name"] == "Ada"
    assert second.status_code == 201
    assert second.json()["role"] == "User"
    assert second.json()["email"] == "second@example.com"


@pytest.mark.asyncio
async def test_register_duplicate_email(client: AsyncClient):
    await client.post("/api/users/register", json=_register_payload())
    response = await client.post("/api/users/register", json=_register_payload())

    assert response.status_code == 400
    assert response.json()["detail"] == "User already exists"


@pytest.mark.asyncio
async def test_register_validation_returns_400(client: AsyncClient):
    response = await client.post("/api/users/register", json=_register_payload(password="short"))

    assert response.status_code == 400
    assert "password" in response.json()["detail"]


@pytest.mark.asyncio
async def test_login_and_me(client: AsyncClient):
    await client.post("/api/users/register", json=_register_payload())

    response = await client.post(
        "/api/users/login", json={"email": "first.admin@example.com", "password": "supersecret1"}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["email"] == "first.admin@example.com"

    me = await client.get("/api/users/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["role"] == "Admin"


@pytest.mark.asyncio
async def test_login_invalid_credentials(client: AsyncClient):
    await client.post("/api/users/register", json=_register_payload())
    response = await client.post(
        "/api/users/login", json={"email": "first.admin@example.com", "password": "wrongpassword"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unauthorized_access(client: AsyncClient):
    response = await client.get("/api/users/me")
    assert response.status_code == 401

    bad = await client.get("/api/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_admin_creates_user_and_sends_welcome(client: AsyncClient, admin_headers, department, notifier):
    payload = _register_payload(email="new.hire@example.com", department_id=department.id, role="User")
    response = await client.post("/api/users/", json=payload, headers=admin_headers)

    assert response.status_code == 201
    assert response.json()["department"]["name"] == "engineering"
    assert notifier.sent[0].to == ["new.hire@example.com"]
    assert "supersecret1" not in notifier.sent[0].body


@pytest.mark.asyncio
async def test_regular_user_cannot_list_users(client: AsyncClient, auth_headers):
    response = await client.get("/api/users/", headers=auth_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_list_and_verify_users(client: AsyncClient, admin_headers, admin_user, test_user):
    listing = await client.get("/api/users/", params={"search": test_user.email}, headers=admin_headers)
    assert [u["id"] for u in listing.json()["data"]] == [test_user.id]

    found = await client.get(f"/api/users/verify/{test_user.email}", headers=admin_headers)
    assert found.json()["id"] == test_user.id

    missing = await client.get("/api/users/verify/ghost@example.com", headers=admin_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_fetch_users_by_ids(client: AsyncClient, auth_headers, admin_user, test_user):
    response = await client.post("/api/users/fetch", json={"ids": [admin_user.id, test_user.id, 999]}, headers=auth_headers)

    assert response.status_code == 200
    assert sorted(u["id"] for u in response.json()) == sorted([admin_user.id, test_user.id])


@pytest.mark.asyncio
async def test_department_change_notifies_colleagues(
    client: AsyncClient, db_session, admin_headers, test_user, notifier
):
    sales = models.Department(name="sales")
    db_session.add(sales)
    await db_session.commit()
    colleague = models.User(
        first_name="Sam", last_name="Seller", email="sam.seller@example.com",
        hashed_password="x", role="User", department_id=sales.id
    )
    db_session.add(colleague)
    await db_session.commit()

    response = await client.put(f"/api/users/{test_user.id}", json={"department_id": sales.id}, headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["department_id"] == sales.id
    assert notifier.subjects() == ["Department Update Notification"]
    assert notifier.sent[0].to == ["sam.seller@example.com"]


@pytest.mark.asyncio
async def test_update_user_duplicate_email(client: AsyncClient, admin_headers, admin_user, test_user):
    response = await client.put(f"/api/users/{test_user.id}", json={"email": admin_user.email}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "Email already in use"


@pytest.mark.asyncio
async def test_bulk_delete_users(client: AsyncClient, admin_headers, admin_user, test_user):
    own = await client.request("DELETE", "/api/users/", json={"ids": [admin_user.id]}, headers=admin_headers)
    assert own.status_code == 400

    response = await client.request("DELETE", "/api/users/", json={"ids": [test_user.id]}, headers=admin_headers)
    assert response.json()["deleted"] == 1

    none = await client.request("DELETE", "/api/users/", json={"ids": [test_user.id]}, headers=admin_headers)
    assert none.status_code == 404
