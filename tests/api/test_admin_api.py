# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from typing import Any, AsyncGenerator, Dict
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.dependencies import get_db, get_redis, get_token_verifier
from clinic_authz.main import app


def token_for(token: str) -> Dict[str, Any]:
    return {"id": int(token.removeprefix("Bearer ").removeprefix("user-"))}


@pytest_asyncio.fixture
async def client(async_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    async def override_get_redis() -> AsyncGenerator[None, None]:
        yield None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_token_verifier] = lambda: token_for

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def accounts(make_user) -> Dict[str, Dict[str, str]]:
    admin = await make_user("admin@example.com", role="admin")
    responsable = await make_user("resp@example.com", role="responsable")
    doctor = await make_user("doc@example.com", role="doctor")
    return {
        "admin": {"x-access-token": f"user-{admin.id}"},
        "responsable": {"x-access-token": f"user-{responsable.id}"},
        "doctor": {"x-access-token": f"user-{doctor.id}"},
        "ids": {"responsable": str(responsable.id), "doctor": str(doctor.id)},
    }


# ----------------------------------------------------------------------
# Permissions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_permission_crud(client: AsyncClient, accounts) -> None:
    admin = accounts["admin"]

    response = await client.post(
        "/api/permissions/", json={"name": "room:book", "category": "room", "description": "Book"}, headers=admin
    )
    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "room:book"
    assert created["isActive"] is True

    duplicate = await client.post("/api/permissions/", json={"name": "room:book"}, headers=admin)
    assert duplicate.status_code == 409
    assert "message" in duplicate.json()

    invalid = await client.post("/api/permissions/", json={"name": "roombook"}, headers=admin)
    assert invalid.status_code == 422

    permission_id = created["id"]
    updated = await client.put(f"/api/permissions/{permission_id}", json={"description": "Reserve"}, headers=admin)
    assert updated.json()["description"] == "Reserve"

    deactivated = await client.put(f"/api/permissions/{permission_id}/deactivate", headers=admin)
    assert deactivated.json()["isActive"] is False
    assert (await client.get("/api/permissions/category/room", headers=admin)).json() == []
    assert len((await client.get("/api/permissions/?isActive=false", headers=admin)).json()) == 1

    activated = await client.put(f"/api/permissions/{permission_id}/activate", headers=admin)
    assert activated.json()["isActive"] is True

    assert (await client.delete(f"/api/permissions/{permission_id}", headers=admin)).status_code == 204
    missing = await client.get(f"/api/permissions/{permission_id}", headers=admin)
    assert missing.status_code == 404
    assert missing.json() == {"message": f"Permission with ID {permission_id} not found!"}


@pytest.mark.asyncio
async def test_permission_routes_are_admin_only(client: AsyncClient, accounts) -> None:
    response = await client.get("/api/permissions/", headers=accounts["responsable"])

    assert response.status_code == 403
    assert response.json() == {"message": "Require Admin Role!"}


# ----------------------------------------------------------------------
# Role permissions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_role_permission_flow(client: AsyncClient, accounts) -> None:
    admin = accounts["admin"]
    permission = (await client.post("/api/permissions/", json={"name": "doctor:view_all"}, headers=admin)).json()

    created = await client.post(
        "/api/role-permissions/", json={"role": "responsable", "permissionId": permission["id"]}, headers=admin
    )
    assert created.status_code == 201
    binding = created.json()
    assert binding["permission"]["name"] == "doctor:view_all"
    assert binding["grantedBy"] is not None

    duplicate = await client.post(
        "/api/role-permissions/", json={"role": "responsable", "permissionId": permission["id"]}, headers=admin
    )
    assert duplicate.status_code == 409

    unknown_role = await client.post(
        "/api/role-permissions/", json={"role": "janitor", "permissionId": permission["id"]}, headers=admin
    )
    assert unknown_role.status_code == 422

    check = await client.get("/api/role-permissions/check/responsable/doctor:view_all", headers=admin)
    assert check.json() == {"hasPermission": True}
    scoped = await client.get(
        "/api/role-permissions/check/responsable/doctor:view_all?resourceType=doctor&resourceId=3", headers=admin
    )
    assert scoped.json() == {"hasPermission": False}
    unknown = await client.get("/api/role-permissions/check/responsable/room:teleport", headers=admin)
    assert unknown.status_code == 400
    assert unknown.json() == {"message": "Unknown permission 'room:teleport'."}

    assert len((await client.get("/api/role-permissions/role/responsable", headers=admin)).json()) == 1
    assert len((await client.get("/api/role-permissions/?role=doctor", headers=admin)).json()) == 0
    assert (await client.get(f"/api/role-permissions/{binding['id']}", headers=admin)).status_code == 200

    cleared = await client.delete("/api/role-permissions/role/responsable", headers=admin)
    assert cleared.json() == {"message": "1 permissions removed from role responsable."}
    assert (await client.delete(f"/api/role-permissions/{binding['id']}", headers=admin)).status_code == 404


# ----------------------------------------------------------------------
# User permissions
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_user_permission_flow(client: AsyncClient, accounts) -> None:
    admin = accounts["admin"]
    responsable = accounts["responsable"]
    doctor_id = accounts["ids"]["doctor"]
    permission = (await client.post("/api/permissions/", json={"name": "doctor:view_all"}, headers=admin)).json()

    # Responsables may grant; the granter is recorded.
    created = await client.post(
        "/api/user-permissions/",
        json={"userId": doctor_id, "permissionId": permission["id"], "expiresAt": "2099-01-01T00:00:00Z"},
        headers=responsable,
    )
    assert created.status_code == 201
    grant = created.json()
    assert grant["grantedBy"] == int(accounts["ids"]["responsable"])
    assert grant["version"] == 1

    check = await client.get(f"/api/user-permissions/check/{doctor_id}/doctor:view_all", headers=responsable)
    assert check.json() == {"hasPermission": True}

    live = await client.get(f"/api/user-permissions/user/{doctor_id}", headers=responsable)
    assert [b["id"] for b in live.json()] == [grant["id"]]

    # Mutations are admin only.
    forbidden = await client.put(f"/api/user-permissions/{grant['id']}/deactivate", headers=responsable)
    assert forbidden.status_code == 403

    deactivated = await client.put(f"/api/user-permissions/{grant['id']}/deactivate", headers=admin)
    assert deactivated.json()["isActive"] is False
    assert (await client.get(f"/api/user-permissions/check/{doctor_id}/doctor:view_all", headers=admin)).json() == {
        "hasPermission": False
    }

    stale = await client.put(
        f"/api/user-permissions/{grant['id']}", json={"reason": "late", "version": 1}, headers=admin
    )
    assert stale.status_code == 409

    extended = await client.put(f"/api/user-permissions/{grant['id']}/extend", json={"expiresAt": None}, headers=admin)
    assert extended.json()["expiresAt"] is None

    listed = await client.get(f"/api/user-permissions/?userId={doctor_id}", headers=responsable)
    assert len(listed.json()) == 1

    removed = await client.delete(f"/api/user-permissions/user/{doctor_id}", headers=admin)
    assert removed.json() == {"message": f"1 permissions removed from user {doctor_id}."}
    assert (await client.get(f"/api/user-permissions/{grant['id']}", headers=admin)).status_code == 404


@pytest.mark.asyncio
async def test_user_permission_errors(client: AsyncClient, accounts) -> None:
    admin = accounts["admin"]

    missing_user = await client.post("/api/user-permissions/", json={"userId": 999, "permissionId": 1}, headers=admin)
    assert missing_user.status_code == 404
    assert missing_user.json() == {"message": "User with ID 999 not found!"}

    unknown = await client.get("/api/user-permissions/check/1/room:teleport", headers=admin)
    assert unknown.status_code == 400

    doctor = await client.get("/api/user-permissions/", headers=accounts["doctor"])
    assert doctor.status_code == 403


@pytest.mark.asyncio
async def test_role_binding_write_refused_when_cache_unreachable(client: AsyncClient, accounts) -> None:
    admin = accounts["admin"]
    permission = (await client.post("/api/permissions/", json={"name": "doctor:view_all"}, headers=admin)).json()

    redis = AsyncMock()
    redis.mget.return_value = [None, None]
    redis.get.return_value = None
    redis.incr.side_effect = RedisConnectionError("redis down")

    async def override_get_redis() -> AsyncGenerator[AsyncMock, None]:
        yield redis

    app.dependency_overrides[get_redis] = override_get_redis

    response = await client.post(
        "/api/role-permissions/", json={"role": "doctor", "permissionId": permission["id"]}, headers=admin
    )
    assert response.status_code == 500
    assert response.json() == {"message": "Permission cache unavailable; retry the change."}
    assert (await client.get("/api/role-permissions/role/doctor", headers=admin)).json() == []
