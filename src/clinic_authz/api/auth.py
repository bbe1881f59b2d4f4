# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from fastapi import APIRouter, Depends, HTTPException

from clinic_authz.authorization.client import PermissionSnapshot
from clinic_authz.authorization.engine import ResolutionEngine
from clinic_authz.authorization.principal import Principal
from clinic_authz.dependencies import get_resolution_engine
from clinic_authz.guards import get_active_principal
from clinic_authz.services.exceptions import StoreUnavailable

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.get("/permissions", response_model=PermissionSnapshot, response_model_by_alias=True)
async def get_my_permissions(
    principal: Principal = Depends(get_active_principal),  # noqa: B008
    engine: ResolutionEngine = Depends(get_resolution_engine),  # noqa: B008
) -> PermissionSnapshot:
    """
    The caller's effective permissions, for client-side display decisions.
    """
    try:
        return await engine.snapshot(principal)
    except StoreUnavailable as e:
        raise HTTPException(status_code=500, detail="Error checking permissions") from e
