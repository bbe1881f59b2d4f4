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

from clinic_authz.authorization.engine import ResolutionEngine
from clinic_authz.authorization.principal import Principal
from clinic_authz.dependencies import get_resolution_engine, get_user_permission_service
from clinic_authz.guards import require_admin, require_admin_or_responsable
from clinic_authz.schemas.permission import (
    Message,
    PermissionCheck,
    UserPermission,
    UserPermissionCreate,
    UserPermissionExtend,
    UserPermissionUpdate,
)
from clinic_authz.services.exceptions import (
    DuplicateResourceError,
    ResourceNotFound,
    StaleUpdateError,
    StoreUnavailable,
    UnknownPermissionError,
    UserPermissionNotFound,
)
from clinic_authz.services.user_permission import UserPermissionService

router = APIRouter(prefix="/api/user-permissions", tags=["User Permissions"])


@router.post("/", response_model=UserPermission, status_code=status.HTTP_201_CREATED, response_model_by_alias=True)
async def create_user_permission(
    data: UserPermissionCreate,
    principal: Principal = Depends(require_admin_or_responsable),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> UserPermission:
    """
    Grant (isGranted=true) or explicitly deny (isGranted=false) a permission to one user.
    """
    try:
        binding = await service.create_binding(data, granted_by=principal.user_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return UserPermission.model_validate(binding)


@router.get("/", response_model=List[UserPermission], response_model_by_alias=True)
async def list_user_permissions(
    user_id: Optional[int] = Query(None, alias="userId"),
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    _principal: Principal = Depends(require_admin_or_responsable),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> List[UserPermission]:
    bindings = await service.list_bindings(user_id, resource_type, is_active)
    return [UserPermission.model_validate(b) for b in bindings]


@router.get("/user/{user_id}", response_model=List[UserPermission], response_model_by_alias=True)
async def list_live_grants_for_user(
    user_id: int,
    _principal: Principal = Depends(require_admin_or_responsable),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> List[UserPermission]:
    """
    Active, unexpired grants of one user.
    """
    try:
        bindings = await service.list_live_grants(user_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return [UserPermission.model_validate(b) for b in bindings]


@router.get("/check/{user_id}/{permission_name}", response_model=PermissionCheck, response_model_by_alias=True)
async def check_user_permission(
    user_id: int,
    permission_name: str,
    resource_type: Optional[str] = Query(None, alias="resourceType"),
    resource_id: Optional[int] = Query(None, alias="resourceId"),
    _principal: Principal = Depends(require_admin_or_responsable),  # noqa: B008
    engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> PermissionCheck:
    """
    Runs full resolution (account status, admin bypass, denials, role and user
    grants) as that user's own request would.
    """
    try:
        allowed = await service.user_has_permission(engine, user_id, permission_name, resource_type, resource_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except UnknownPermissionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail="Error checking permissions") from e
    return PermissionCheck(has_permission=allowed)


@router.get("/{id}", response_model=UserPermission, response_model_by_alias=True)
async def get_user_permission(
    id: int,
    _principal: Principal = Depends(require_admin_or_responsable),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> UserPermission:
    try:
        return UserPermission.model_validate(await service.get_binding(id))
    except UserPermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.put("/{id}", response_model=UserPermission, response_model_by_alias=True)
async def update_user_permission(
    id: int,
    data: UserPermissionUpdate,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> UserPermission:
    try:
        return UserPermission.model_validate(await service.update_binding(id, data))
    except UserPermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StaleUpdateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.put("/{id}/activate", response_model=UserPermission, response_model_by_alias=True)
async def activate_user_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> UserPermission:
    try:
        return UserPermission.model_validate(await service.set_active(id, True))
    except UserPermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StaleUpdateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.put("/{id}/deactivate", response_model=UserPermission, response_model_by_alias=True)
async def deactivate_user_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> UserPermission:
    try:
        return UserPermission.model_validate(await service.set_active(id, False))
    except UserPermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StaleUpdateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.put("/{id}/extend", response_model=UserPermission, response_model_by_alias=True)
async def extend_user_permission(
    id: int,
    data: UserPermissionExtend,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> UserPermission:
    """
    Move the expiry of a binding. A null expiresAt makes it permanent.
    """
    try:
        return UserPermission.model_validate(await service.extend(id, data.expires_at))
    except UserPermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StaleUpdateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.delete("/user/{user_id}", response_model=Message)
async def delete_user_permissions(
    user_id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> Message:
    count = await service.delete_by_user(user_id)
    return Message(message=f"{count} permissions removed from user {user_id}.")


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: UserPermissionService = Depends(get_user_permission_service),  # noqa: B008
) -> None:
    try:
        await service.delete_binding(id)
    except UserPermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
