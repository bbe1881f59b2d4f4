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
Security Core - Models
Defines the User, Permission, RolePermission, UserPermission and DoctorManager models.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_authz.models.base import Base


class User(Base):
    """
    Platform user.
    The principal entity for authentication and authorization.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    password_hash: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(32), default="patient", index=True)
    status: Mapped[str] = mapped_column(String(16), default="active")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class Permission(Base):
    """
    Security Permission.
    Represents a granular access right (e.g., 'appointment:view_all').
    Permissions are soft-disabled through is_active rather than deleted while referenced.
    """

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50), default="general", index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name='{self.name}')>"


class RolePermission(Base):
    """
    Binding of a role name to a permission, optionally narrowed to a resource type or instance.
    A role may hold the same permission at several scopes; each scope is its own row.
    """

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role", "permission_id", "resource_type", "resource_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role: Mapped[str] = mapped_column(String(32), index=True)
    permission_id: Mapped[int] = mapped_column(Integer, ForeignKey("permissions.id"), nullable=False)
    resource_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    granted_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())

    permission: Mapped[Permission] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<RolePermission(id={self.id}, role='{self.role}', permission_id={self.permission_id})>"


class UserPermission(Base):
    """
    Per-user override of a permission.
    is_granted=False rows are explicit denials. expires_at=None never expires.
    """

    __tablename__ = "user_permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    permission_id: Mapped[int] = mapped_column(Integer, ForeignKey("permissions.id"), index=True)
    is_granted: Mapped[bool] = mapped_column(Boolean, default=True)
    resource_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    granted_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id"), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now())
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    permission: Mapped[Permission] = relationship(lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<UserPermission(id={self.id}, user_id={self.user_id}, "
            f"permission_id={self.permission_id}, is_granted={self.is_granted})>"
        )


class DoctorManager(Base):
    """
    Manager (responsable) assignment to a doctor.
    Independent of the permission tables; consulted only by ownership checks.
    """

    __tablename__ = "doctor_managers"
    __table_args__ = (UniqueConstraint("doctor_id", "manager_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    doctor_id: Mapped[int] = mapped_column(Integer, ForeignKey("doctors.id"), index=True)
    manager_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), index=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True)
    can_edit_schedule: Mapped[bool] = mapped_column(Boolean, default=True)
    can_manage_appointments: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
