# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clinic_authz.authorization.base import Role


class PermissionBase(BaseModel):
    name: str
    description: Optional[str] = None
    category: str = "general"
    is_active: bool = Field(True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class PermissionCreate(PermissionBase):
    @field_validator("name")
    @classmethod
    def name_is_namespaced(cls, value: str) -> str:
        resource, sep, action = value.partition(":")
        if not sep or not resource or not action:
            raise ValueError("Permission names are namespaced as 'resource:action'")
        return value


class PermissionUpdate(BaseModel):
    # name is immutable once created
    description: Optional[str] = None
    category: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class Permission(PermissionBase):
    id: int
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


class RolePermissionCreate(BaseModel):
    role: Role
    permission_id: int = Field(alias="permissionId")
    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_id: Optional[int] = Field(None, alias="resourceId")
    granted_by: Optional[int] = Field(None, alias="grantedBy")

    model_config = ConfigDict(populate_by_name=True)


class RolePermission(BaseModel):
    id: int
    role: str
    permission_id: int = Field(alias="permissionId")
    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_id: Optional[int] = Field(None, alias="resourceId")
    granted_by: Optional[int] = Field(None, alias="grantedBy")
    granted_at: Optional[datetime] = Field(None, alias="grantedAt")
    permission: Optional[Permission] = None

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class UserPermissionCreate(BaseModel):
    user_id: int = Field(alias="userId")
    permission_id: int = Field(alias="permissionId")
    is_granted: bool = Field(True, alias="isGranted")
    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_id: Optional[int] = Field(None, alias="resourceId")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    granted_by: Optional[int] = Field(None, alias="grantedBy")
    reason: Optional[str] = Field(None, max_length=255)
    is_active: bool = Field(True, alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class UserPermissionUpdate(BaseModel):
    is_granted: Optional[bool] = Field(None, alias="isGranted")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    reason: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = Field(None, alias="isActive")
    # Optimistic concurrency: when given, the update only applies to this version.
    version: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True)


class UserPermissionExtend(BaseModel):
    expires_at: Optional[datetime] = Field(alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)


class UserPermission(BaseModel):
    id: int
    user_id: int = Field(alias="userId")
    permission_id: int = Field(alias="permissionId")
    is_granted: bool = Field(alias="isGranted")
    resource_type: Optional[str] = Field(None, alias="resourceType")
    resource_id: Optional[int] = Field(None, alias="resourceId")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    granted_by: Optional[int] = Field(None, alias="grantedBy")
    reason: Optional[str] = None
    is_active: bool = Field(alias="isActive")
    version: int
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    permission: Optional[Permission] = None

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class PermissionCheck(BaseModel):
    has_permission: bool = Field(alias="hasPermission")

    model_config = ConfigDict(populate_by_name=True)


class Message(BaseModel):
    message: str
