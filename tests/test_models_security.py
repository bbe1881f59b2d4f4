# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.models import DoctorManager, Permission, RolePermission, User, UserPermission
from clinic_authz.models.relations import Doctor


@pytest.mark.asyncio
async def test_defaults_and_repr(async_session: AsyncSession) -> None:
    user = User(email="new@example.com", name="new", password_hash="hash")
    permission = Permission(name="user:view_all")
    async_session.add_all([user, permission])
    await async_session.commit()
    await async_session.refresh(user)
    await async_session.refresh(permission)

    assert user.role == "patient" and user.status == "active"
    assert permission.category == "general" and permission.is_active
    assert "new@example.com" in repr(user)
    assert "user:view_all" in repr(permission)


@pytest.mark.asyncio
async def test_role_binding_unique_per_scope(async_session: AsyncSession, make_permission) -> None:
    permission = await make_permission("doctor:manage")
    async_session.add_all(
        [
            RolePermission(role="responsable", permission_id=permission.id, resource_type="doctor", resource_id=1),
            RolePermission(role="responsable", permission_id=permission.id, resource_type="doctor", resource_id=2),
        ]
    )
    await async_session.commit()

    async_session.add(
        RolePermission(role="responsable", permission_id=permission.id, resource_type="doctor", resource_id=1)
    )
    with pytest.raises(IntegrityError):
        await async_session.commit()
    await async_session.rollback()


@pytest.mark.asyncio
async def test_user_permission_version_starts_at_one(async_session: AsyncSession, make_user, make_permission) -> None:
    user = await make_user("grantee@example.com")
    permission = await make_permission("doctor:view_all")
    binding = UserPermission(user_id=user.id, permission_id=permission.id, reason="cover")
    async_session.add(binding)
    await async_session.commit()

    assert binding.version == 1
    assert binding.is_granted and binding.is_active
    assert repr(binding).startswith("<UserPermission(id=")


@pytest.mark.asyncio
async def test_doctor_manager_unique(async_session: AsyncSession, make_user) -> None:
    doctor_user = await make_user("doc@example.com", role="doctor")
    manager = await make_user("resp@example.com", role="responsable")
    doctor = Doctor(user_id=doctor_user.id)
    async_session.add(doctor)
    await async_session.commit()

    async_session.add(DoctorManager(doctor_id=doctor.id, manager_id=manager.id))
    await async_session.commit()
    async_session.add(DoctorManager(doctor_id=doctor.id, manager_id=manager.id, is_primary=False))
    with pytest.raises(IntegrityError):
        await async_session.commit()
    await async_session.rollback()
