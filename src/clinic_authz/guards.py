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
Guard Layer
FastAPI dependencies that authenticate the caller and enforce permissions at
the request boundary, before any handler logic runs.

Every guard ends in exactly one of: the request continues with the decision
recorded on request.state, or a GuardError rendered as {"message": ...}.
Denial reasons are logged, never returned.
"""

from typing import Awaitable, Callable, List, Optional, Sequence

from fastapi import Depends, Header, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.authorization.engine import Decision, ResolutionEngine
from clinic_authz.authorization.ownership import OwnershipChecks, RelationshipLookup
from clinic_authz.authorization.principal import Principal, PrincipalResolver, TokenVerifier
from clinic_authz.config import is_production
from clinic_authz.dependencies import (
    get_db,
    get_ownership_checks,
    get_relationship_lookup,
    get_resolution_engine,
    get_token_verifier,
)
from clinic_authz.extractors import ResourceIdExtractor, body_field, dossier_patient_id, first_of, path_param
from clinic_authz.services.exceptions import (
    ResourceNotFound,
    StoreUnavailable,
    Unauthenticated,
    UnknownPermissionError,
    UserNotFound,
    ValidationError,
)
from clinic_authz.utils.logger import logger

security = HTTPBearer(auto_error=False)

ACCOUNT_INACTIVE_MESSAGE = "Account is not active. Please contact support."
CHECK_FAILED_MESSAGE = "Error checking permissions"


class GuardError(Exception):
    def __init__(self, status_code: int, message: str, error: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.error = error
        super().__init__(message)


async def guard_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, GuardError)
    content = {"message": exc.message}
    if exc.status_code >= 500 and exc.error and not is_production():
        content["error"] = exc.error
    return JSONResponse(status_code=exc.status_code, content=content)


# ----------------------------------------------------------------------
# Identity
# ----------------------------------------------------------------------


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),  # noqa: B008
    x_access_token: Optional[str] = Header(None, alias="x-access-token"),  # noqa: B008
    session: AsyncSession = Depends(get_db),  # noqa: B008
    verify: TokenVerifier = Depends(get_token_verifier),  # noqa: B008
) -> Principal:
    token = x_access_token or (credentials.credentials if credentials else None)
    if not token:
        logger.warning(f"Missing authentication credentials on {request.url.path}")
        raise GuardError(403, "No token provided!")

    try:
        claims = verify(token)
    except Unauthenticated as e:
        logger.warning(f"Token verification failed on {request.url.path}: {e}")
        raise GuardError(401, "Unauthorized!") from e

    try:
        principal = await PrincipalResolver(session).resolve(claims)
    except UserNotFound as e:
        raise GuardError(404, "User not found.") from e
    except Unauthenticated as e:
        raise GuardError(401, "Unauthorized!") from e
    except StoreUnavailable as e:
        raise GuardError(500, "Error checking user status.", error=str(e)) from e

    request.state.principal = principal
    return principal


async def get_active_principal(principal: Principal = Depends(get_current_principal)) -> Principal:  # noqa: B008
    """Account status is checked before, and independently of, permission resolution."""
    if not principal.is_active:
        logger.warning(f"Inactive account {principal.user_id} ({principal.status}) attempted access")
        raise GuardError(403, ACCOUNT_INACTIVE_MESSAGE)
    return principal


# ----------------------------------------------------------------------
# Enforcement
# ----------------------------------------------------------------------


async def enforce(
    request: Optional[Request],
    principal: Optional[Principal],
    evaluate: Callable[[], Awaitable[Decision]],
    denial_message: str,
) -> Decision:
    """
    Runs one authorization decision and turns it into continue-or-raise.
    Store failures fail closed with a 500; unknown permission names fail fast
    outside production and deny in production.
    """
    if principal is None:
        logger.error("Authorization guard invoked without an authenticated principal")
        raise GuardError(500, CHECK_FAILED_MESSAGE, error="guard ran before authentication")

    try:
        decision = await evaluate()
    except GuardError:
        raise
    except StoreUnavailable as e:
        logger.error(f"Permission check failed for user {principal.user_id}: {e}")
        raise GuardError(500, CHECK_FAILED_MESSAGE, error=str(e)) from e
    except UnknownPermissionError as e:
        if is_production():
            logger.error(f"Route references unknown permission '{e.name}'; denying")
            raise GuardError(403, denial_message) from e
        raise GuardError(500, CHECK_FAILED_MESSAGE, error=str(e)) from e
    except ResourceNotFound as e:
        raise GuardError(404, f"{e.resource} not found.") from e
    except ValidationError as e:
        raise GuardError(400, str(e)) from e

    if not decision.allow:
        logger.warning(
            f"Access denied for user {principal.user_id} ({principal.role}): "
            f"{decision.reason.value} on {decision.permission} [{decision.scope}]"
        )
        raise GuardError(403, denial_message)

    logger.debug(f"Access granted for user {principal.user_id}: {decision.reason.value} on {decision.permission}")
    if request is not None:
        decisions: List[Decision] = getattr(request.state, "decisions", [])
        request.state.decisions = [*decisions, decision]
    return decision


# ----------------------------------------------------------------------
# Permission guards
# ----------------------------------------------------------------------

PrincipalGuard = Callable[..., Awaitable[Principal]]


def require_permission(
    permission_name: str, resource_type: Optional[str] = None, resource_id: Optional[int] = None
) -> PrincipalGuard:
    async def permission_guard(
        request: Request,
        principal: Principal = Depends(get_active_principal),  # noqa: B008
        engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
    ) -> Principal:
        await enforce(
            request,
            principal,
            lambda: engine.resolve(principal, permission_name, resource_type, resource_id),
            f"Requires permission: {permission_name}",
        )
        return principal

    return permission_guard


def require_any_permission(
    permission_names: Sequence[str], resource_type: Optional[str] = None, resource_id: Optional[int] = None
) -> PrincipalGuard:
    names = list(permission_names)

    async def any_permission_guard(
        request: Request,
        principal: Principal = Depends(get_active_principal),  # noqa: B008
        engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
    ) -> Principal:
        await enforce(
            request,
            principal,
            lambda: engine.resolve_any(principal, names, resource_type, resource_id),
            f"Requires one of these permissions: {', '.join(names)}",
        )
        return principal

    return any_permission_guard


def require_all_permissions(permission_names: Sequence[str]) -> PrincipalGuard:
    names = list(permission_names)

    async def all_permissions_guard(
        request: Request,
        principal: Principal = Depends(get_active_principal),  # noqa: B008
        engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
    ) -> Principal:
        await enforce(
            request,
            principal,
            lambda: engine.resolve_all(principal, names),
            f"Requires all of these permissions: {', '.join(names)}",
        )
        return principal

    return all_permissions_guard


def require_resource_permission(
    permission_name: str, resource_type: str, extractor: ResourceIdExtractor
) -> PrincipalGuard:
    """Instance-scoped check where the instance id comes from the request."""

    async def resource_permission_guard(
        request: Request,
        principal: Principal = Depends(get_active_principal),  # noqa: B008
        engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
        lookup: RelationshipLookup = Depends(get_relationship_lookup),  # noqa: B008
    ) -> Principal:
        async def evaluate() -> Decision:
            resource_id = await extractor(request, lookup)
            if resource_id is None:
                raise GuardError(400, "Unable to determine resource ID for access check.")
            return await engine.resolve(principal, permission_name, resource_type, resource_id)

        await enforce(request, principal, evaluate, f"Requires permission: {permission_name} for {resource_type}")
        return principal

    return resource_permission_guard


def require_roles(*roles: str, message: Optional[str] = None) -> PrincipalGuard:
    allowed = list(roles)
    denial = message or f"Require one of these roles: {', '.join(allowed)}"

    async def role_guard(principal: Principal = Depends(get_active_principal)) -> Principal:  # noqa: B008
        if principal.role not in allowed:
            logger.warning(f"User {principal.user_id} with role '{principal.role}' lacks role {allowed}")
            raise GuardError(403, denial)
        return principal

    return role_guard


require_admin = require_roles("admin", message="Require Admin Role!")
require_admin_or_responsable = require_roles("admin", "responsable")


# ----------------------------------------------------------------------
# Ownership guards
# ----------------------------------------------------------------------

OwnershipCheck = Callable[[OwnershipChecks, Principal, int], Awaitable[Decision]]


def _ownership_guard(
    check: OwnershipCheck,
    extractor: ResourceIdExtractor,
    denial_message: str,
    missing_id_message: str = "Unable to determine resource ID for access check.",
) -> PrincipalGuard:
    async def ownership_guard(
        request: Request,
        principal: Principal = Depends(get_active_principal),  # noqa: B008
        checks: OwnershipChecks = Depends(get_ownership_checks),  # noqa: B008
    ) -> Principal:
        async def evaluate() -> Decision:
            target_id = await extractor(request, checks.lookup)
            if target_id is None:
                logger.error(f"{missing_id_message} ({request.url.path})")
                raise GuardError(400, missing_id_message)
            return await check(checks, principal, target_id)

        await enforce(request, principal, evaluate, denial_message)
        return principal

    return ownership_guard


def _principal_guard(
    check: Callable[[OwnershipChecks, Principal], Awaitable[Decision]], denial_message: str
) -> PrincipalGuard:
    async def principal_guard(
        request: Request,
        principal: Principal = Depends(get_active_principal),  # noqa: B008
        checks: OwnershipChecks = Depends(get_ownership_checks),  # noqa: B008
    ) -> Principal:
        await enforce(request, principal, lambda: check(checks, principal), denial_message)
        return principal

    return principal_guard


def check_doctor_appointment_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, doctor_id: c.can_access_doctor_appointments(p, doctor_id),
        path_param("doctorId"),
        "You do not have permission to view appointments for this doctor.",
    )


def check_user_appointment_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, user_id: c.can_access_user_appointments(p, user_id),
        path_param("userId"),
        "You do not have permission to view this user's appointments.",
    )


def check_doctor_management_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, doctor_id: c.can_manage_doctor(p, doctor_id),
        first_of(path_param("doctorId"), body_field("doctorId")),
        "You do not have permission to manage this doctor.",
    )


def check_notification_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, user_id: c.can_access_user_notifications(p, user_id),
        path_param("userId"),
        "You do not have permission to view notifications for this user.",
    )


def check_notification_management_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, user_id: c.can_manage_user_notifications(p, user_id),
        path_param("userId"),
        "You do not have permission to manage notifications for this user.",
    )


def check_notification_ownership() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, notification_id: c.can_access_notification(p, notification_id),
        path_param("id"),
        "You do not have permission to access this notification.",
    )


def check_user_view_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, user_id: c.can_view_user(p, user_id),
        first_of(path_param("id"), path_param("userId")),
        "You do not have permission to view this user.",
    )


def check_user_update_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, user_id: c.can_update_user(p, user_id),
        first_of(path_param("id"), path_param("userId")),
        "You do not have permission to update this user.",
    )


def check_medical_dossier_access() -> PrincipalGuard:
    return _ownership_guard(
        lambda c, p, patient_id: c.can_access_medical_dossier(p, patient_id),
        dossier_patient_id,
        "You do not have permission to access this medical dossier.",
        missing_id_message="Unable to determine patient ID for access check.",
    )


def check_specialty_permission(action: str) -> PrincipalGuard:
    return _principal_guard(
        lambda c, p: c.can_manage_specialty(p, action),
        f"You do not have permission to {action} specialties.",
    )


def check_permission_management_access() -> PrincipalGuard:
    return _principal_guard(
        lambda c, p: c.can_manage_permissions(p),
        "You do not have permission to manage user permissions.",
    )


def check_medical_dossier_management_access() -> PrincipalGuard:
    return _principal_guard(
        lambda c, p: c.can_manage_medical_dossier(p),
        "You do not have permission to manage medical dossiers.",
    )


__all__ = [
    "GuardError",
    "enforce",
    "get_active_principal",
    "get_current_principal",
    "require_permission",
    "require_any_permission",
    "require_all_permissions",
    "require_resource_permission",
    "require_roles",
    "require_admin",
    "require_admin_or_responsable",
    "check_doctor_appointment_access",
    "check_user_appointment_access",
    "check_doctor_management_access",
    "check_notification_access",
    "check_notification_management_access",
    "check_notification_ownership",
    "check_user_view_access",
    "check_user_update_access",
    "check_medical_dossier_access",
    "check_specialty_permission",
    "check_permission_management_access",
    "check_medical_dossier_management_access",
]
