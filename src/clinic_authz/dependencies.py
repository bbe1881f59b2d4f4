# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from __future__ import annotations

from typing import AsyncGenerator, Optional

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinic_authz.authorization.catalog import PermissionCatalog, default_catalog
from clinic_authz.authorization.engine import ResolutionEngine
from clinic_authz.authorization.ownership import OwnershipChecks, RelationshipLookup
from clinic_authz.authorization.principal import TokenVerifier, verify_jwt
from clinic_authz.config import DATABASE_URL, REDIS_URL
from clinic_authz.services.permission import PermissionService
from clinic_authz.services.permission_store import PermissionStore
from clinic_authz.services.relationships import SqlRelationshipLookup
from clinic_authz.services.role_permission import RolePermissionService
from clinic_authz.services.user_permission import UserPermissionService

engine = create_async_engine(DATABASE_URL, echo=False)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def get_redis() -> AsyncGenerator[Optional[Redis], None]:
    # The role binding cache is optional; without redis every lookup hits the database.
    client: Optional[Redis] = None
    try:
        client = Redis.from_url(REDIS_URL, decode_responses=True)
    except Exception:
        yield None
        return

    try:
        yield client
    finally:
        await client.aclose()


def get_catalog() -> PermissionCatalog:
    return default_catalog


def get_token_verifier() -> TokenVerifier:
    return verify_jwt


async def get_permission_store(
    session: AsyncSession = Depends(get_db),  # noqa: B008
    redis: Optional[Redis] = Depends(get_redis),  # noqa: B008
) -> PermissionStore:
    return PermissionStore(session, redis)


async def get_resolution_engine(
    store: PermissionStore = Depends(get_permission_store),  # noqa: B008
    catalog: PermissionCatalog = Depends(get_catalog),  # noqa: B008
) -> ResolutionEngine:
    # FastAPI caches dependencies per request, so guards and handlers share one engine.
    return ResolutionEngine(store, catalog)


async def get_relationship_lookup(
    session: AsyncSession = Depends(get_db),  # noqa: B008
) -> RelationshipLookup:
    return SqlRelationshipLookup(session)


async def get_ownership_checks(
    engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
    lookup: RelationshipLookup = Depends(get_relationship_lookup),  # noqa: B008
) -> OwnershipChecks:
    return OwnershipChecks(engine, lookup)


async def get_permission_service(
    session: AsyncSession = Depends(get_db),  # noqa: B008
    store: PermissionStore = Depends(get_permission_store),  # noqa: B008
) -> PermissionService:
    return PermissionService(session, store)


async def get_role_permission_service(
    session: AsyncSession = Depends(get_db),  # noqa: B008
    store: PermissionStore = Depends(get_permission_store),  # noqa: B008
    catalog: PermissionCatalog = Depends(get_catalog),  # noqa: B008
) -> RolePermissionService:
    return RolePermissionService(session, store, catalog)


async def get_user_permission_service(
    session: AsyncSession = Depends(get_db),  # noqa: B008
) -> UserPermissionService:
    return UserPermissionService(session)
