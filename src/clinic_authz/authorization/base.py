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
Authorization primitives shared by the server engine and the client snapshot.

Every permission reference crossing the store boundary is a PermissionRef,
whatever table it came from; nothing downstream branches on representation.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from clinic_authz.utils.clock import as_naive_utc


class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"
    RESPONSABLE = "responsable"
    RECEPTIONIST = "receptionist"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class GrantSource(str, Enum):
    ROLE = "role"
    USER = "user"


class ScopeTier(str, Enum):
    GLOBAL = "global"
    TYPE = "type"
    INSTANCE = "instance"


class Scope(BaseModel):
    """
    (resource_type, resource_id) pair narrowing a permission.
    A scope carrying a resource_id is an instance scope even without a type.
    """

    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_id: Optional[int] = Field(None, alias="resourceId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def tier(self) -> ScopeTier:
        if self.resource_id is not None:
            return ScopeTier.INSTANCE
        if self.resource_type:
            return ScopeTier.TYPE
        return ScopeTier.GLOBAL

    def __str__(self) -> str:
        if self.tier is ScopeTier.GLOBAL:
            return "global"
        if self.tier is ScopeTier.TYPE:
            return f"{self.resource_type}:*"
        return f"{self.resource_type}:{self.resource_id}"


GLOBAL_SCOPE = Scope()


def scope_matches(binding: Scope, requested: Scope) -> bool:
    """
    Exact-tier compatibility between a stored binding and a requested scope.

    - global request: only an unscoped binding matches
    - type request: same resource_type, binding has no resource_id
    - instance request: resource_type and resource_id both equal

    A broader binding never satisfies a narrower request.
    """
    tier = requested.tier
    if tier is ScopeTier.GLOBAL:
        return binding.tier is ScopeTier.GLOBAL
    if tier is ScopeTier.TYPE:
        return binding.resource_type == requested.resource_type and binding.resource_id is None
    return binding.resource_type == requested.resource_type and binding.resource_id == requested.resource_id


class PermissionRef(BaseModel):
    """
    A resolved permission binding, from either a role or a user override.
    Also the entry shape of the client permission snapshot.
    """

    id: int
    name: str
    category: str = "general"
    source: GrantSource
    is_granted: bool = Field(True, alias="isGranted")
    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_id: Optional[int] = Field(None, alias="resourceId")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    granted_by: Optional[int] = Field(None, alias="grantedBy")
    granted_at: Optional[datetime] = Field(None, alias="grantedAt")
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def scope(self) -> Scope:
        return Scope(resource_type=self.resource_type, resource_id=self.resource_id)

    def matches(self, name: str, requested: Scope) -> bool:
        return self.name == name and scope_matches(self.scope, requested)

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return as_naive_utc(self.expires_at) <= as_naive_utc(now)
