# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from clinic_authz.authorization.base import Role
from clinic_authz.authorization.principal import Principal
from clinic_authz.dependencies import get_role_permission_service
from clinic_authz.guards import require_admin
from clinic_authz.schemas.permission import Message, PermissionCheck, RolePermission, RolePermissionCreate
from clinic_authz.services.exceptions import (
    DuplicateResourceError,
    PermissionNotFound,
    RolePermissionNotFound,
    StoreUnavailable,
    UnknownPermissionError,
)
from clinic_authz.services.role_permission import RolePermissionService

router = APIRouter(prefix="/api/role-permissions", tags=["Role Permissions"])


@router.post("/", response_model=RolePermission, status_code=status.HTTP_201_CREATED, response_model_by_alias=True)
async def create_role_permission(
    data: RolePermissionCreate,
    admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> RolePermission:
    """
    Bind a permission to a role, optionally scoped to a resource type or instance.
    """
    try:
        binding = await service.create_binding(data, granted_by=data.granted_by or admin.user_id)
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return RolePermission.model_validate(binding)


@router.get("/", response_model=List[RolePermission], response_model_by_alias=True)
async def list_role_permissions(
    role: Optional[Role] = Query(None),
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> List[RolePermission]:
    bindings = await service.list_bindings(role.value if role else None)
    return [RolePermission.model_validate(b) for b in bindings]


@router.get("/role/{role}", response_model=List[RolePermission], response_model_by_alias=True)
async def list_permissions_for_role(
    role: Role,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> List[RolePermission]:
    bindings = await service.list_bindings(role.value)
    return [RolePermission.model_validate(b) for b in bindings]


@router.get("/check/{role}/{permission_name}", response_model=PermissionCheck, response_model_by_alias=True)
async def check_role_permission(
    role: Role,
    permission_name: str,
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    resource_id: Optional[int] = Query(None, alias="resourceId"),
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> PermissionCheck:
    """
    Whether the role's own bindings grant the permission at exactly the given scope.
    """
    try:
        allowed = await service.role_has_permission(role.value, permission_name, resource_type, resource_id)
    except UnknownPermissionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail="Error checking permissions") from e
    return PermissionCheck(has_permission=allowed)


@router.get("/{id}", response_model=RolePermission, response_model_by_alias=True)
async def get_role_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> RolePermission:
    try:
        return RolePermission.model_validate(await service.get_binding(id))
    except RolePermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.delete("/role/{role}", response_model=Message)
async def delete_role_permissions(
    role: Role,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> Message:
    try:
        count = await service.delete_by_role(role.value)
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return Message(message=f"{count} permissions removed from role {role.value}.")


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: RolePermissionService = Depends(get_role_permission_service),  # noqa: B008
) -> None:
    try:
        await service.delete_binding(id)
    except RolePermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
