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
Role Permission Service
Admin management of role bindings. Every write retires the cached bindings of the affected role.
"""

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.authorization.base import Scope
from clinic_authz.authorization.catalog import PermissionCatalog, default_catalog
from clinic_authz.models.security import Permission, RolePermission
from clinic_authz.schemas.permission import RolePermissionCreate
from clinic_authz.services.exceptions import (
    DuplicateResourceError,
    PermissionNotFound,
    RolePermissionNotFound,
    StoreUnavailable,
)
from clinic_authz.services.permission_store import PermissionStore, scope_clause
from clinic_authz.utils.logger import logger


class RolePermissionService:
    def __init__(self, db: AsyncSession, store: PermissionStore, catalog: PermissionCatalog = default_catalog):
        self.db = db
        self.store = store
        self.catalog = catalog

    async def create_binding(self, data: RolePermissionCreate, granted_by: Optional[int] = None) -> RolePermission:
        role = data.role.value
        permission = await self.db.get(Permission, data.permission_id)
        if permission is None:
            raise PermissionNotFound(data.permission_id)

        # NULL scope columns defeat the unique constraint, so check explicitly.
        stmt = select(RolePermission.id).where(
            RolePermission.role == role,
            RolePermission.permission_id == data.permission_id,
            scope_clause(RolePermission, data.resource_type, data.resource_id),
        )
        if (await self.db.execute(stmt)).first() is not None:
            raise DuplicateResourceError(
                f"Role {role} already has permission with ID {data.permission_id} for this scope!"
            )

        binding = RolePermission(
            role=role,
            permission_id=data.permission_id,
            resource_type=data.resource_type,
            resource_id=data.resource_id,
            granted_by=data.granted_by or granted_by,
        )
        self.db.add(binding)
        await self._commit_for_role(role)
        await self.db.refresh(binding)
        await self.db.refresh(binding, attribute_names=["permission"])

        scope = Scope(resource_type=data.resource_type, resource_id=data.resource_id)
        logger.info(f"Granted '{permission.name}' to role '{role}' at scope {scope}")
        return binding

    async def list_bindings(self, role: Optional[str] = None) -> List[RolePermission]:
        stmt = select(RolePermission).order_by(RolePermission.role, RolePermission.id)
        if role:
            stmt = stmt.where(RolePermission.role == role)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_binding(self, binding_id: int) -> RolePermission:
        binding = await self.db.get(RolePermission, binding_id)
        if binding is None:
            raise RolePermissionNotFound(binding_id)
        return binding

    async def delete_binding(self, binding_id: int) -> None:
        binding = await self.get_binding(binding_id)
        role = binding.role
        await self.db.delete(binding)
        await self._commit_for_role(role)
        logger.info(f"Removed role permission {binding_id} from role '{role}'")

    async def delete_by_role(self, role: str) -> int:
        result = await self.db.execute(delete(RolePermission).where(RolePermission.role == role))
        await self._commit_for_role(role)
        count = result.rowcount or 0
        logger.info(f"Removed {count} role permissions from role '{role}'")
        return count

    async def role_has_permission(
        self,
        role: str,
        permission_name: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> bool:
        """Whether a role binding alone grants the permission at the given scope (exact tier)."""
        self.catalog.require_known(permission_name)
        requested = Scope(resource_type=resource_type, resource_id=resource_id)
        bindings = await self.store.get_role_permissions(role)
        return any(ref.matches(permission_name, requested) for ref in bindings)

    async def _commit_for_role(self, role: str) -> None:
        # The cache is invalidated on both sides of the commit, so an unreachable
        # cache aborts the write and readers that loaded the old rows are superseded.
        try:
            await self.store.invalidate_role(role)
        except StoreUnavailable:
            await self.db.rollback()
            raise
        await self.db.commit()
        await self.store.invalidate_role(role)
