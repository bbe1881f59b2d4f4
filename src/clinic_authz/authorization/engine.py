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
Resolution Engine
Decides ALLOW/DENY for a principal and a (permission, scope) request.

Precedence, evaluated only after every binding list is loaded:

1. inactive account            -> DENY  (InactiveAccount)
2. admin role                  -> ALLOW (AdminBypass), scope-blind
3. self-referential permission -> ALLOW (SelfAccess), no store reads
4. role binding matches        -> tentative ALLOW
5. user denial matches         -> DENY  (ExplicitDeny), beats step 4
6. tentative ALLOW from 4      -> ALLOW (RoleGrant)
7. unexpired user grant        -> ALLOW (UserGrant)
8. otherwise                   -> DENY  (NoMatchingGrant)

Scope matching is exact-tier (see authorization.base.scope_matches).

Grants honour expires_at but denials do not: an expired denial row still
denies. Whether denials should expire too is an open product question.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Tuple

from clinic_authz.authorization.base import PermissionRef, Scope
from clinic_authz.authorization.catalog import (
    APPOINTMENT_UPDATE_OWN,
    APPOINTMENT_VIEW_OWN,
    NOTIFICATION_UPDATE_OWN,
    NOTIFICATION_VIEW_OWN,
    USER_UPDATE_OWN,
    USER_VIEW_OWN,
    PermissionCatalog,
    default_catalog,
)
from clinic_authz.authorization.client import PermissionSnapshot
from clinic_authz.authorization.principal import Principal
from clinic_authz.utils.clock import utcnow
from clinic_authz.utils.logger import logger

SELF_ACCESS_PERMISSIONS: FrozenSet[str] = frozenset(
    {
        USER_VIEW_OWN,
        USER_UPDATE_OWN,
        NOTIFICATION_VIEW_OWN,
        NOTIFICATION_UPDATE_OWN,
        APPOINTMENT_VIEW_OWN,
        APPOINTMENT_UPDATE_OWN,
    }
)


class PermissionSource(Protocol):
    """Read side of the Permission Store as the engine sees it."""

    supports_concurrent_reads: bool

    async def get_role_permissions(self, role: str) -> List[PermissionRef]: ...

    async def get_user_permissions(self, user_id: int, only_granted: bool = True) -> List[PermissionRef]: ...

    async def get_denied_permissions(self, user_id: int) -> List[PermissionRef]: ...


class DecisionReason(str, Enum):
    INACTIVE_ACCOUNT = "InactiveAccount"
    ADMIN_BYPASS = "AdminBypass"
    SELF_ACCESS = "SelfAccess"
    RELATIONSHIP = "Relationship"
    EXPLICIT_DENY = "ExplicitDeny"
    ROLE_GRANT = "RoleGrant"
    USER_GRANT = "UserGrant"
    NO_MATCHING_GRANT = "NoMatchingGrant"


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: DecisionReason
    permission: Optional[str] = None
    scope: Scope = field(default_factory=Scope)
    matched: Optional[PermissionRef] = None

    def __bool__(self) -> bool:
        return self.allow


@dataclass(frozen=True)
class ResolvedPermissions:
    """Everything the store holds for one principal, loaded once per request."""

    role_bindings: Tuple[PermissionRef, ...] = ()
    grants: Tuple[PermissionRef, ...] = ()
    denials: Tuple[PermissionRef, ...] = ()

    def all_granted(self) -> List[PermissionRef]:
        return [*self.role_bindings, *self.grants]


class ResolutionEngine:
    """
    Request-scoped evaluator.
    Store reads are cached per principal for the lifetime of the instance, so one
    engine must not outlive the request that created it.
    """

    def __init__(self, store: PermissionSource, catalog: PermissionCatalog = default_catalog):
        self.store = store
        self.catalog = catalog
        self._resolved: Dict[Tuple[int, str], ResolvedPermissions] = {}

    async def load(self, principal: Principal) -> ResolvedPermissions:
        key = (principal.user_id, principal.role)
        cached = self._resolved.get(key)
        if cached is not None:
            return cached

        # No ordering dependency between the three reads; precedence is applied afterwards.
        if getattr(self.store, "supports_concurrent_reads", False):
            role_bindings, grants, denials = await asyncio.gather(
                self.store.get_role_permissions(principal.role),
                self.store.get_user_permissions(principal.user_id, only_granted=True),
                self.store.get_denied_permissions(principal.user_id),
            )
        else:
            role_bindings = await self.store.get_role_permissions(principal.role)
            grants = await self.store.get_user_permissions(principal.user_id, only_granted=True)
            denials = await self.store.get_denied_permissions(principal.user_id)

        resolved = ResolvedPermissions(tuple(role_bindings), tuple(grants), tuple(denials))
        self._resolved[key] = resolved
        return resolved

    def invalidate(self, user_id: Optional[int] = None) -> None:
        if user_id is None:
            self._resolved.clear()
            return
        for key in [k for k in self._resolved if k[0] == user_id]:
            del self._resolved[key]

    async def resolve(
        self,
        principal: Principal,
        permission_name: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> Decision:
        """
        Never raises for an ordinary deny. Raises UnknownPermissionError for names
        missing from the catalog and StoreUnavailable when the store cannot be read.
        """
        self.catalog.require_known(permission_name)
        scope = Scope(resource_type=resource_type, resource_id=resource_id)

        if not principal.is_active:
            return Decision(False, DecisionReason.INACTIVE_ACCOUNT, permission_name, scope)

        if principal.is_admin:
            return Decision(True, DecisionReason.ADMIN_BYPASS, permission_name, scope)

        if permission_name in SELF_ACCESS_PERMISSIONS and resource_id is not None and resource_id == principal.user_id:
            return Decision(True, DecisionReason.SELF_ACCESS, permission_name, scope)

        resolved = await self.load(principal)

        role_match = _first_match(resolved.role_bindings, permission_name, scope)

        # Denials are not filtered by expires_at (grants are).
        denial = _first_match(resolved.denials, permission_name, scope)
        if denial is not None:
            return Decision(False, DecisionReason.EXPLICIT_DENY, permission_name, scope, denial)

        if role_match is not None:
            return Decision(True, DecisionReason.ROLE_GRANT, permission_name, scope, role_match)

        now = utcnow()
        grant = _first_match((g for g in resolved.grants if not g.is_expired(now)), permission_name, scope)
        if grant is not None:
            return Decision(True, DecisionReason.USER_GRANT, permission_name, scope, grant)

        return Decision(False, DecisionReason.NO_MATCHING_GRANT, permission_name, scope)

    async def resolve_any(
        self,
        principal: Principal,
        permission_names: Sequence[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> Decision:
        """First allowing decision, else the most specific denial (ExplicitDeny over NoMatchingGrant)."""
        if not permission_names:
            raise ValueError("resolve_any needs at least one permission name")

        for name in permission_names:
            self.catalog.require_known(name)

        denied: Optional[Decision] = None
        for name in permission_names:
            decision = await self.resolve(principal, name, resource_type, resource_id)
            if decision.allow:
                return decision
            if denied is None or decision.reason is DecisionReason.EXPLICIT_DENY:
                denied = decision
        assert denied is not None
        return denied

    async def resolve_all(
        self,
        principal: Principal,
        permission_names: Sequence[str],
        resource_type: Optional[str] = None,
        resource_id: Optional[int] = None,
    ) -> Decision:
        """First denying decision, else the last allow."""
        if not permission_names:
            raise ValueError("resolve_all needs at least one permission name")

        for name in permission_names:
            self.catalog.require_known(name)

        decision: Optional[Decision] = None
        for name in permission_names:
            decision = await self.resolve(principal, name, resource_type, resource_id)
            if not decision.allow:
                return decision
        assert decision is not None
        return decision

    async def snapshot(self, principal: Principal) -> PermissionSnapshot:
        """Permission snapshot for client-side gating. Advisory only."""
        if principal.is_admin and principal.is_active:
            return PermissionSnapshot.build([], is_admin=True)
        if not principal.is_active:
            return PermissionSnapshot.build([])

        resolved = await self.load(principal)
        now = utcnow()
        entries = [
            *resolved.role_bindings,
            *(g for g in resolved.grants if not g.is_expired(now)),
            *resolved.denials,
        ]
        logger.debug(f"Built permission snapshot with {len(entries)} entries for user {principal.user_id}")
        return PermissionSnapshot.build(entries)


def _first_match(refs: Iterable[PermissionRef], name: str, scope: Scope) -> Optional[PermissionRef]:
    for ref in refs:
        if ref.matches(name, scope):
            return ref
    return None
