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

from clinic_authz.authorization.principal import Principal
from clinic_authz.dependencies import get_permission_service
from clinic_authz.guards import require_admin
from clinic_authz.schemas.permission import Permission, PermissionCreate, PermissionUpdate
from clinic_authz.services.exceptions import (
    DuplicateResourceError,
    PermissionInUseError,
    PermissionNotFound,
    StoreUnavailable,
)
from clinic_authz.services.permission import PermissionService

router = APIRouter(prefix="/api/permissions", tags=["Permissions"])


@router.post("/", response_model=Permission, status_code=status.HTTP_201_CREATED, response_model_by_alias=True)
async def create_permission(
    data: PermissionCreate,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> Permission:
    """
    Register a new permission in the catalog table.
    """
    try:
        permission = await service.create_permission(data)
    except DuplicateResourceError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return Permission.model_validate(permission)


@router.get("/", response_model=List[Permission], response_model_by_alias=True)
async def list_permissions(
    category: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> List[Permission]:
    permissions = await service.list_permissions(category, is_active)
    return [Permission.model_validate(p) for p in permissions]


@router.get("/category/{category}", response_model=List[Permission], response_model_by_alias=True)
async def list_permissions_by_category(
    category: str,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> List[Permission]:
    """
    Active permissions of one category.
    """
    permissions = await service.list_by_category(category)
    return [Permission.model_validate(p) for p in permissions]


@router.get("/{id}", response_model=Permission, response_model_by_alias=True)
async def get_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> Permission:
    try:
        return Permission.model_validate(await service.get_permission(id))
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.put("/{id}", response_model=Permission, response_model_by_alias=True)
async def update_permission(
    id: int,
    data: PermissionUpdate,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> Permission:
    try:
        return Permission.model_validate(await service.update_permission(id, data))
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.put("/{id}/activate", response_model=Permission, response_model_by_alias=True)
async def activate_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> Permission:
    try:
        return Permission.model_validate(await service.set_active(id, True))
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.put("/{id}/deactivate", response_model=Permission, response_model_by_alias=True)
async def deactivate_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> Permission:
    """
    Deactivated permissions stop granting through every binding that references them.
    """
    try:
        return Permission.model_validate(await service.set_active(id, False))
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    id: int,
    _admin: Principal = Depends(require_admin),  # noqa: B008
    service: PermissionService = Depends(get_permission_service),  # noqa: B008
) -> None:
    try:
        await service.delete_permission(id)
    except PermissionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PermissionInUseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
