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
Client-side permission snapshot.
Fetched at login and consulted for UI gating only; the server guards stay authoritative.
Relationship shortcuts are not mirrored here, so the UI may under-show until the next round-trip.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from clinic_authz.authorization.base import GrantSource, PermissionRef, Scope
from clinic_authz.utils.clock import utcnow


class PermissionSnapshot(BaseModel):
    all: List[PermissionRef] = Field(default_factory=list)
    by_category: Dict[str, List[PermissionRef]] = Field(default_factory=dict, alias="byCategory")
    is_admin: bool = Field(False, alias="isAdmin")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def build(cls, entries: Iterable[PermissionRef], is_admin: bool = False) -> "PermissionSnapshot":
        entries = list(entries)
        by_category: Dict[str, List[PermissionRef]] = {}
        for entry in entries:
            by_category.setdefault(entry.category, []).append(entry)
        return cls(all=entries, by_category=by_category, is_admin=is_admin)

    def has_permission(
        self,
        permission_name: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Same scope rule and deny precedence as the server engine."""
        if self.is_admin:
            return True

        scope = Scope(resource_type=resource_type, resource_id=resource_id)
        now = now or utcnow()

        granted = False
        for entry in self.all:
            if not entry.matches(permission_name, scope):
                continue
            if not entry.is_granted:
                return False
            if entry.source is GrantSource.USER and entry.is_expired(now):
                continue
            granted = True
        return granted

    def has_any_permission(
        self,
        permission_names: Sequence[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> bool:
        return any(self.has_permission(name, resource_type, resource_id) for name in permission_names)

    def has_all_permissions(
        self,
        permission_names: Sequence[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> bool:
        return all(self.has_permission(name, resource_type, resource_id) for name in permission_names)

    def by_resource_type(self, resource_type: str) -> List[PermissionRef]:
        return [p for p in self.all if p.resource_type == resource_type and p.is_granted]
