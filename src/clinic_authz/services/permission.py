# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

"""
Permission Service
Admin management of the Permission table. Permissions are soft-deactivated;
hard deletion is refused while any role or user binding references the row.
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.models.security import Permission, RolePermission, UserPermission
from clinic_authz.schemas.permission import PermissionCreate, PermissionUpdate
from clinic_authz.services.exceptions import (
    DuplicateResourceError,
    PermissionInUseError,
    PermissionNotFound,
    StoreUnavailable,
)
from clinic_authz.services.permission_store import PermissionStore
from clinic_authz.utils.logger import logger


class PermissionService:
    def __init__(self, db: AsyncSession, store: Optional[PermissionStore] = None):
        self.db = db
        self.store = store

    async def create_permission(self, data: PermissionCreate) -> Permission:
        permission = Permission(
            name=data.name,
            description=data.description,
            category=data.category,
            is_active=data.is_active,
        )
        self.db.add(permission)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateResourceError(f"Permission with name '{data.name}' already exists.") from e

        await self.db.refresh(permission)
        logger.info(f"Created permission '{permission.name}' (id={permission.id})")
        return permission

    async def list_permissions(
        self, category: Optional[str] = None, is_active: Optional[bool] = None
    ) -> List[Permission]:
        stmt = select(Permission).order_by(Permission.category, Permission.name)
        if category:
            stmt = stmt.where(Permission.category == category)
        if is_active is not None:
            stmt = stmt.where(Permission.is_active.is_(is_active))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_by_category(self, category: str) -> List[Permission]:
        """Active permissions of one category."""
        return await self.list_permissions(category=category, is_active=True)

    async def get_permission(self, permission_id: int) -> Permission:
        permission = await self.db.get(Permission, permission_id)
        if permission is None:
            raise PermissionNotFound(permission_id)
        return permission

    async def get_by_name(self, name: str) -> Optional[Permission]:
        result = await self.db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def update_permission(self, permission_id: int, data: PermissionUpdate) -> Permission:
        permission = await self.get_permission(permission_id)
        changes = data.model_dump(exclude_unset=True)
        for key, value in changes.items():
            if value is not None:
                setattr(permission, key, value)
        await self._commit_for_roles()
        await self.db.refresh(permission)
        logger.info(f"Updated permission '{permission.name}': {sorted(changes)}")
        return permission

    async def set_active(self, permission_id: int, is_active: bool) -> Permission:
        permission = await self.get_permission(permission_id)
        permission.is_active = is_active
        await self._commit_for_roles()
        await self.db.refresh(permission)
        logger.info(f"Permission '{permission.name}' {'activated' if is_active else 'deactivated'}")
        return permission

    async def delete_permission(self, permission_id: int) -> None:
        permission = await self.get_permission(permission_id)

        role_count = await self.db.scalar(
            select(func.count()).select_from(RolePermission).where(RolePermission.permission_id == permission_id)
        )
        user_count = await self.db.scalar(
            select(func.count()).select_from(UserPermission).where(UserPermission.permission_id == permission_id)
        )
        if role_count or user_count:
            raise PermissionInUseError(permission_id, role_count or 0, user_count or 0)

        await self.db.delete(permission)
        await self.db.commit()
        logger.info(f"Deleted permission '{permission.name}'")

    async def _commit_for_roles(self) -> None:
        # Cached role bindings embed permission names and activity, so every role is
        # retired, on both sides of the commit as in RolePermissionService.
        if self.store is not None:
            try:
                await self.store.invalidate_role()
            except StoreUnavailable:
                await self.db.rollback()
                raise
        await self.db.commit()
        if self.store is not None:
            await self.store.invalidate_role()
