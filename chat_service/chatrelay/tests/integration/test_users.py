import pytest
from httpx import AsyncClient

from chatrelay.tests.support import TEST_PASSWORD

pytestmark = pytest.mark.asyncio


async def test_read_users(client: AsyncClient, auth_header, test_user, test_user2):
    response = await client.get("/api/v1/users/", headers=auth_header)
    assert response.status_code == 200
    ids = [user["id"] for user in response.json()]
    assert test_user.id in ids
    assert test_user2.id in ids


async def test_read_users_filtered(client: AsyncClient, auth_header, test_user, test_user2):
    response = await client.get(
        "/api/v1/users/", params={"username": test_user2.username}, headers=auth_header
    )
    assert response.status_code == 200
    assert [user["id"] for user in response.json()] == [test_user2.id]


async def test_read_users_paginated(client: AsyncClient, auth_header, test_user, test_user2):
    response = await client.get(
        "/api/v1/users/", params={"skip": 1, "limit": 1}, headers=auth_header
    )
    assert response.status_code == 200
    assert len(response.json()) == 1


async def test_read_users_me(client: AsyncClient, auth_header, test_user):
    response = await client.get("/api/v1/users/me", headers=auth_header)
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == test_user.id
    assert data["username"] == test_user.username
    assert data["is_active"] is True


async def test_unauthenticated_request(client: AsyncClient):
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 401


async def test_search_users_excludes_self(client: AsyncClient, auth_header, test_user, test_user2):
    response = await client.get(
        "/api/v1/users/search", params={"query": "testuser"}, headers=auth_header
    )
    assert response.status_code == 200
    ids = [user["id"] for user in response.json()]
    assert test_user2.id in ids
    assert test_user.id not in ids
    assert set(response.json()[0]) == {"id", "username"}


async def test_search_users_needs_query(client: AsyncClient, auth_header):
    response = await client.get("/api/v1/users/search", params={"query": ""}, headers=auth_header)
    assert response.status_code == 422


async def test_read_user_by_id(client: AsyncClient, auth_header, test_user2):
    response = await client.get(f"/api/v1/users/{test_user2.id}", headers=auth_header)
    assert response.status_code == 200
    assert response.json()["username"] == test_user2.username


async def test_read_missing_user(client: AsyncClient, auth_header):
    response = await client.get("/api/v1/users/999999", headers=auth_header)
    assert response.status_code == 404
    assert response.json() == {"message": "User not found", "error": "not_found"}


async def test_update_me(client: AsyncClient, auth_header, test_user):
    response = await client.put(
        "/api/v1/users/me", json={"email": "renamed@example.com"}, headers=auth_header
    )
    assert response.status_code == 200
    assert response.json()["email"] == "renamed@example.com"

    me = await client.get("/api/v1/users/me", headers=auth_header)
    assert me.json()["email"] == "renamed@example.com"


async def test_update_me_email_taken(client: AsyncClient, auth_header, test_user2):
    response = await client.put(
        "/api/v1/users/me", json={"email": test_user2.email.upper()}, headers=auth_header
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Email already registered"


async def test_update_me_invalid_email(client: AsyncClient, auth_header):
    response = await client.put(
        "/api/v1/users/me", json={"email": "notanemail"}, headers=auth_header
    )
    assert response.status_code == 422


async def test_change_password(client: AsyncClient, auth_header, test_user):
    response = await client.put(
        "/api/v1/users/me/password",
        json={"current_password": TEST_PASSWORD, "new_password": "brandnewpassword"},
        headers=auth_header,
    )
    assert response.status_code == 204

    old = await client.post(
        "/api/v1/auth/login", data={"username": test_user.username, "password": TEST_PASSWORD}
    )
    assert old.status_code == 401
    new = await client.post(
        "/api/v1/auth/login",
        data={"username": test_user.username, "password": "brandnewpassword"},
    )
    assert new.status_code == 200


async def test_change_password_wrong_current(client: AsyncClient, auth_header):
    response = await client.put(
        "/api/v1/users/me/password",
        json={"current_password": "wrongpassword", "new_password": "brandnewpassword"},
        headers=auth_header,
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect current password"


async def test_change_password_too_short(client: AsyncClient, auth_header):
    response = await client.put(
        "/api/v1/users/me/password",
        json={"current_password": TEST_PASSWORD, "new_password": "short"},
        headers=auth_header,
    )
    assert response.status_code == 422


async def test_delete_me(client: AsyncClient, auth_header, auth_header2, test_user, connect):
    _, transport = connect(test_user.id)

    response = await client.delete("/api/v1/users/me", headers=auth_header)
    assert response.status_code == 204

    assert transport.closed_with == 1000
    assert (await client.get("/api/v1/users/me", headers=auth_header)).status_code == 401
    login = await client.post(
        "/api/v1/auth/login", data={"username": test_user.username, "password": TEST_PASSWORD}
    )
    assert login.status_code == 401
    assert login.json()["detail"] == "Inactive user"

    # the account row stays, so other users still see who sent old messages
    kept = await client.get(f"/api/v1/users/{test_user.id}", headers=auth_header2)
    assert kept.status_code == 200
    assert kept.json()["is_active"] is False
