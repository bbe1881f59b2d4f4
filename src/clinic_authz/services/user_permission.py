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
User Permission Service
Admin management of per-user grants and denials.
Rows are evaluated independently at read time, so each write touches a single row.
Concurrent updates of one row are detected through its version column.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from clinic_authz.authorization.engine import ResolutionEngine
from clinic_authz.authorization.principal import Principal
from clinic_authz.models.security import Permission, User, UserPermission
from clinic_authz.schemas.permission import UserPermissionCreate, UserPermissionUpdate
from clinic_authz.services.exceptions import (
    DuplicateResourceError,
    PermissionNotFound,
    StaleUpdateError,
    UserNotFound,
    UserPermissionNotFound,
)
from clinic_authz.services.permission_store import scope_clause
from clinic_authz.utils.clock import as_naive_utc, utcnow
from clinic_authz.utils.logger import logger


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return as_naive_utc(value) if value is not None else None


class UserPermissionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_binding(self, data: UserPermissionCreate, granted_by: Optional[int] = None) -> UserPermission:
        if await self.db.get(User, data.user_id) is None:
            raise UserNotFound(data.user_id)
        permission = await self.db.get(Permission, data.permission_id)
        if permission is None:
            raise PermissionNotFound(data.permission_id)

        stmt = select(UserPermission.id).where(
            UserPermission.user_id == data.user_id,
            UserPermission.permission_id == data.permission_id,
            scope_clause(UserPermission, data.resource_type, data.resource_id),
        )
        if (await self.db.execute(stmt)).first() is not None:
            raise DuplicateResourceError(
                f"User with ID {data.user_id} already has permission with ID {data.permission_id} for this resource!"
            )

        binding = UserPermission(
            user_id=data.user_id,
            permission_id=data.permission_id,
            is_granted=data.is_granted,
            resource_type=data.resource_type,
            resource_id=data.resource_id,
            expires_at=_naive(data.expires_at),
            granted_by=data.granted_by or granted_by,
            reason=data.reason,
            is_active=data.is_active,
        )
        self.db.add(binding)
        await self.db.commit()
        await self.db.refresh(binding)
        await self.db.refresh(binding, attribute_names=["permission"])

        verb = "Granted" if binding.is_granted else "Denied"
        logger.info(f"{verb} '{permission.name}' for user {binding.user_id} (binding {binding.id})")
        return binding

    async def list_bindings(
        self,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[UserPermission]:
        stmt = select(UserPermission).order_by(UserPermission.user_id, UserPermission.id)
        if user_id is not None:
            stmt = stmt.where(UserPermission.user_id == user_id)
        if resource_type:
            stmt = stmt.where(UserPermission.resource_type == resource_type)
        if is_active is not None:
            stmt = stmt.where(UserPermission.is_active.is_(is_active))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_live_grants(self, user_id: int) -> List[UserPermission]:
        """Active, unexpired grants of active permissions for one user."""
        if await self.db.get(User, user_id) is None:
            raise UserNotFound(user_id)

        now = utcnow()
        stmt = (
            select(UserPermission)
            .join(Permission, UserPermission.permission_id == Permission.id)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.is_granted.is_(True),
                UserPermission.is_active.is_(True),
                Permission.is_active.is_(True),
                (UserPermission.expires_at.is_(None)) | (UserPermission.expires_at > now),
            )
            .order_by(UserPermission.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_binding(self, binding_id: int) -> UserPermission:
        binding = await self.db.get(UserPermission, binding_id)
        if binding is None:
            raise UserPermissionNotFound(binding_id)
        return binding

    async def update_binding(self, binding_id: int, data: UserPermissionUpdate) -> UserPermission:
        binding = await self.get_binding(binding_id)
        if data.version is not None and data.version != binding.version:
            raise StaleUpdateError(
                f"UserPermission {binding_id} is at version {binding.version}, update was for {data.version}."
            )

        changes = data.model_dump(exclude_unset=True, exclude={"version"})
        for key, value in changes.items():
            if key == "expires_at":
                binding.expires_at = _naive(value)
            elif value is not None:
                setattr(binding, key, value)
        return await self._save(binding)

    async def set_active(self, binding_id: int, is_active: bool) -> UserPermission:
        binding = await self.get_binding(binding_id)
        binding.is_active = is_active
        return await self._save(binding)

    async def extend(self, binding_id: int, expires_at: Optional[datetime]) -> UserPermission:
        """Moves the expiry of a binding; None makes it permanent."""
        binding = await self.get_binding(binding_id)
        binding.expires_at = _naive(expires_at)
        return await self._save(binding)

    async def delete_binding(self, binding_id: int) -> None:
        binding = await self.get_binding(binding_id)
        await self.db.delete(binding)
        await self.db.commit()
        logger.info(f"Deleted user permission {binding_id}")

    async def delete_by_user(self, user_id: int) -> int:
        result = await self.db.execute(delete(UserPermission).where(UserPermission.user_id == user_id))
        await self.db.commit()
        count = result.rowcount or 0
        logger.info(f"Deleted {count} user permissions for user {user_id}")
        return count

    async def user_has_permission(
        self,
        engine: ResolutionEngine,
        user_id: int,
        permission_name: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> bool:
        """Full resolution for another user, as their own request would see it."""
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFound(user_id)
        principal = Principal(user_id=user.id, role=user.role, status=user.status)
        decision = await engine.resolve(principal, permission_name, resource_type, resource_id)
        return decision.allow

    async def _save(self, binding: UserPermission) -> UserPermission:
        binding_id = binding.id
        try:
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            raise StaleUpdateError(f"UserPermission {binding_id} was modified concurrently.") from e
        await self.db.refresh(binding)
        await self.db.refresh(binding, attribute_names=["permission"])
        logger.info(f"Updated user permission {binding.id} (version {binding.version})")
        return binding
