# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.authorization.principal import Principal, PrincipalResolver, user_id_from_claims, verify_jwt
from clinic_authz.services.exceptions import StoreUnavailable, Unauthenticated, UserNotFound

SECRET = "test-secret-with-at-least-32-bytes!"


def test_verify_jwt_accepts_bearer_prefix() -> None:
    token = jwt.encode({"id": 5, "role": "doctor"}, SECRET, algorithm="HS256")

    assert verify_jwt(f"Bearer {token}", SECRET)["id"] == 5
    assert verify_jwt(token, SECRET)["role"] == "doctor"


@pytest.mark.parametrize("token", ["", "Bearer ", "garbage"])
def test_verify_jwt_rejects_bad_tokens(token: str) -> None:
    with pytest.raises(Unauthenticated):
        verify_jwt(token, SECRET)


def test_verify_jwt_rejects_wrong_secret_and_missing_subject() -> None:
    with pytest.raises(Unauthenticated):
        verify_jwt(jwt.encode({"id": 5}, "other-secret", algorithm="HS256"), SECRET)
    with pytest.raises(Unauthenticated):
        verify_jwt(jwt.encode({"role": "admin"}, SECRET, algorithm="HS256"), SECRET)


def test_user_id_from_claims() -> None:
    assert user_id_from_claims({"id": 3}) == 3
    assert user_id_from_claims({"sub": "4"}) == 4
    with pytest.raises(Unauthenticated):
        user_id_from_claims({"sub": "not-a-number"})


def test_principal_flags() -> None:
    assert Principal(user_id=1, role="admin").is_admin
    assert Principal(user_id=1, role="doctor").is_active
    assert not Principal(user_id=1, role="doctor", status="suspended").is_active


@pytest.mark.asyncio
async def test_resolver_uses_stored_role(async_session: AsyncSession, make_user) -> None:
    user = await make_user("doc@example.com", role="doctor", status="inactive")

    # The token claims admin; the users table wins.
    principal = await PrincipalResolver(async_session).resolve({"id": user.id, "role": "admin"})

    assert principal == Principal(user_id=user.id, role="doctor", status="inactive")


@pytest.mark.asyncio
async def test_resolver_missing_user(async_session: AsyncSession) -> None:
    with pytest.raises(UserNotFound):
        await PrincipalResolver(async_session).resolve({"id": 404})


@pytest.mark.asyncio
async def test_resolver_database_failure() -> None:
    session = MagicMock()
    session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("down")))

    with pytest.raises(StoreUnavailable):
        await PrincipalResolver(session).resolve({"id": 1})
