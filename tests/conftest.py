# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from datetime import datetime
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from clinic_authz.authorization.base import GrantSource, PermissionRef
from clinic_authz.models.base import Base
from clinic_authz.models.security import Permission, User
from clinic_authz.services.exceptions import StoreUnavailable
from clinic_authz.utils.clock import utcnow


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest_asyncio.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async_session_maker = async_sessionmaker(async_engine, expire_on_commit=False)
    async with async_session_maker() as session:
        yield session


# ----------------------------------------------------------------------
# In-memory permission store
# ----------------------------------------------------------------------


class InMemoryPermissionStore:
    """Behaves like PermissionStore: grants exclude expired rows, denials do not."""

    supports_concurrent_reads = True

    def __init__(self) -> None:
        self.role_bindings: Dict[str, List[PermissionRef]] = {}
        self.user_bindings: Dict[int, List[PermissionRef]] = {}
        self.reads = 0
        self.fail = False

    def bind_role(self, role: str, ref: PermissionRef) -> None:
        self.role_bindings.setdefault(role, []).append(ref)

    def bind_user(self, user_id: int, ref: PermissionRef) -> None:
        self.user_bindings.setdefault(user_id, []).append(ref)

    async def get_role_permissions(self, role: str) -> List[PermissionRef]:
        self._read()
        return list(self.role_bindings.get(role, []))

    async def get_user_permissions(self, user_id: int, only_granted: bool = True) -> List[PermissionRef]:
        self._read()
        now = utcnow()
        refs = []
        for ref in self.user_bindings.get(user_id, []):
            if ref.is_granted and not ref.is_expired(now):
                refs.append(ref)
            elif not ref.is_granted and not only_granted:
                refs.append(ref)
        return refs

    async def get_denied_permissions(self, user_id: int) -> List[PermissionRef]:
        self._read()
        return [ref for ref in self.user_bindings.get(user_id, []) if not ref.is_granted]

    def _read(self) -> None:
        self.reads += 1
        if self.fail:
            raise StoreUnavailable("permission store offline")


@pytest.fixture
def memory_store() -> InMemoryPermissionStore:
    return InMemoryPermissionStore()


RefFactory = Callable[..., PermissionRef]


@pytest.fixture
def role_ref() -> RefFactory:
    counter = iter(range(1, 10_000))

    def make(
        name: str, resource_type: Optional[str] = None, resource_id: Optional[int] = None, category: str = "general"
    ) -> PermissionRef:
        return PermissionRef(
            id=next(counter),
            name=name,
            category=category,
            source=GrantSource.ROLE,
            resource_type=resource_type,
            resource_id=resource_id,
        )

    return make


@pytest.fixture
def user_ref() -> RefFactory:
    counter = iter(range(10_000, 20_000))

    def make(
        name: str,
        is_granted: bool = True,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        expires_at: Optional[datetime] = None,
        category: str = "general",
    ) -> PermissionRef:
        return PermissionRef(
            id=next(counter),
            name=name,
            category=category,
            source=GrantSource.USER,
            is_granted=is_granted,
            resource_type=resource_type,
            resource_id=resource_id,
            expires_at=expires_at,
        )

    return make


# ----------------------------------------------------------------------
# Database rows
# ----------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(async_session: AsyncSession) -> Callable[..., Any]:
    async def make(email: str, role: str = "patient", status: str = "active") -> User:
        user = User(email=email, name=email.split("@")[0], password_hash="hash", role=role, status=status)
        async_session.add(user)
        await async_session.commit()
        await async_session.refresh(user)
        return user

    return make


@pytest_asyncio.fixture
async def make_permission(async_session: AsyncSession) -> Callable[..., Any]:
    async def make(name: str, category: str = "general", is_active: bool = True) -> Permission:
        permission = Permission(name=name, category=category, description=f"{name} permission", is_active=is_active)
        async_session.add(permission)
        await async_session.commit()
        await async_session.refresh(permission)
        return permission

    return make
