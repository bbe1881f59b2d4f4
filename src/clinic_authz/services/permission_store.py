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
Permission Store
Read side of the role bindings and user overrides, returned as PermissionRef.
Only bindings whose Permission is active are ever returned.
The store trusts its caller; write access is enforced by the guard layer.

Role bindings may be cached in redis. Cache entries are keyed by a global
epoch and a per-role generation; invalidation increments a counter instead
of deleting entries, so an entry written from rows read before a change is
never looked up again once the counter has moved.
"""

from typing import Any, List, Optional, Sequence

from pydantic import TypeAdapter
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import ColumnElement, Row, Select, and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.authorization.base import GrantSource, PermissionRef
from clinic_authz.config import ROLE_PERMISSION_CACHE_TTL
from clinic_authz.models.security import Permission, RolePermission, UserPermission
from clinic_authz.services.exceptions import StoreUnavailable
from clinic_authz.utils.clock import utcnow
from clinic_authz.utils.logger import logger

_refs_adapter = TypeAdapter(List[PermissionRef])
ROLE_CACHE_EPOCH_KEY = "rolePermissionsEpoch"


def role_generation_key(role: str) -> str:
    return f"rolePermissionsGeneration:{role}"


def role_cache_key(role: str, epoch: int = 0, generation: int = 0) -> str:
    return f"rolePermissions:{role}:{epoch}:{generation}"


def role_binding_ref(binding: RolePermission, permission: Permission) -> PermissionRef:
    return PermissionRef(
        id=binding.id,
        name=permission.name,
        category=permission.category,
        source=GrantSource.ROLE,
        resource_type=binding.resource_type,
        resource_id=binding.resource_id,
        granted_by=binding.granted_by,
        granted_at=binding.granted_at,
    )


def user_binding_ref(binding: UserPermission, permission: Permission) -> PermissionRef:
    return PermissionRef(
        id=binding.id,
        name=permission.name,
        category=permission.category,
        source=GrantSource.USER,
        is_granted=binding.is_granted,
        resource_type=binding.resource_type,
        resource_id=binding.resource_id,
        expires_at=binding.expires_at,
        granted_by=binding.granted_by,
        granted_at=binding.created_at,
        reason=binding.reason,
    )


class PermissionStore:
    # A single AsyncSession cannot run statements concurrently.
    supports_concurrent_reads = False

    def __init__(self, db: AsyncSession, redis: Optional[Redis] = None, cache_ttl: int = ROLE_PERMISSION_CACHE_TTL):
        self.db = db
        self.redis = redis
        self.cache_ttl = cache_ttl

    async def get_role_permissions(self, role: str) -> List[PermissionRef]:
        # Resolved before the database read; see the module docstring.
        cache_key = await self._cache_key(role)
        if cache_key is not None:
            cached = await self._cache_get(cache_key)
            if cached is not None:
                return cached

        stmt = (
            select(RolePermission, Permission)
            .join(Permission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role == role, Permission.is_active.is_(True))
            .order_by(RolePermission.id)
        )
        rows = await self._fetch(stmt, f"role bindings for '{role}'")
        refs = [role_binding_ref(binding, permission) for binding, permission in rows]

        if cache_key is not None:
            await self._cache_set(cache_key, refs)
        return refs

    async def get_user_permissions(self, user_id: int, only_granted: bool = True) -> List[PermissionRef]:
        """
        Grants are filtered by expiry; with only_granted=False denials are
        included as well, unfiltered by expiry.
        """
        now = utcnow()
        live_grant = and_(
            UserPermission.is_granted.is_(True),
            or_(UserPermission.expires_at.is_(None), UserPermission.expires_at > now),
        )
        condition = live_grant if only_granted else or_(live_grant, UserPermission.is_granted.is_(False))

        stmt = (
            select(UserPermission, Permission)
            .join(Permission, UserPermission.permission_id == Permission.id)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.is_active.is_(True),
                Permission.is_active.is_(True),
                condition,
            )
            .order_by(UserPermission.id)
        )
        rows = await self._fetch(stmt, f"user permissions for user {user_id}")
        return [user_binding_ref(binding, permission) for binding, permission in rows]

    async def get_denied_permissions(self, user_id: int) -> List[PermissionRef]:
        # No expiry filter on denials; see the note in authorization.engine.
        stmt = (
            select(UserPermission, Permission)
            .join(Permission, UserPermission.permission_id == Permission.id)
            .where(
                UserPermission.user_id == user_id,
                UserPermission.is_granted.is_(False),
                UserPermission.is_active.is_(True),
                Permission.is_active.is_(True),
            )
            .order_by(UserPermission.id)
        )
        rows = await self._fetch(stmt, f"denied permissions for user {user_id}")
        return [user_binding_ref(binding, permission) for binding, permission in rows]

    async def invalidate_role(self, role: Optional[str] = None) -> None:
        """
        Retires cached role bindings for one role, or for every role.

        Raises StoreUnavailable when the counter cannot be moved: a cache that
        may still hold revoked bindings must not be reported as invalidated.
        """
        if not self.redis:
            return
        key = ROLE_CACHE_EPOCH_KEY if role is None else role_generation_key(role)
        try:
            await self.redis.incr(key)
        except RedisError as e:
            logger.error(f"Failed to invalidate role permission cache for '{role or '*'}': {e}")
            raise StoreUnavailable("Permission cache unavailable; retry the change.") from e

    async def _fetch(self, stmt: Select[Any], what: str) -> Sequence[Row[Any]]:
        try:
            result = await self.db.execute(stmt)
            return result.all()
        except SQLAlchemyError as e:
            logger.error(f"Permission store unavailable while loading {what}: {e}")
            raise StoreUnavailable(f"Could not load {what}") from e

    async def _cache_key(self, role: str) -> Optional[str]:
        """Current cache key for the role, or None when the cache is off or unreachable."""
        if not self.redis:
            return None
        try:
            epoch, generation = await self.redis.mget(ROLE_CACHE_EPOCH_KEY, role_generation_key(role))
        except RedisError as e:
            logger.warning(f"Role permission cache generation read failed for '{role}': {e}")
            return None
        return role_cache_key(role, int(epoch or 0), int(generation or 0))

    async def _cache_get(self, cache_key: str) -> Optional[List[PermissionRef]]:
        assert self.redis is not None
        try:
            cached_data = await self.redis.get(cache_key)
        except RedisError as e:
            logger.warning(f"Role permission cache read failed for '{cache_key}': {e}")
            return None
        if not cached_data:
            return None
        try:
            return _refs_adapter.validate_json(cached_data)
        except ValueError:
            # Fall back to the database if the cached payload cannot be parsed
            return None

    async def _cache_set(self, cache_key: str, refs: List[PermissionRef]) -> None:
        assert self.redis is not None
        try:
            await self.redis.set(cache_key, _refs_adapter.dump_json(refs, by_alias=True), ex=self.cache_ttl)
        except RedisError as e:
            logger.warning(f"Role permission cache write failed for '{cache_key}': {e}")


def scope_clause(model: Any, resource_type: Optional[str], resource_id: Optional[int]) -> ColumnElement[bool]:
    """SQL condition selecting rows stored with exactly this scope (NULL-safe)."""
    type_clause = model.resource_type.is_(None) if resource_type is None else model.resource_type == resource_type
    id_clause = model.resource_id.is_(None) if resource_id is None else model.resource_id == resource_id
    return and_(type_clause, id_clause)
