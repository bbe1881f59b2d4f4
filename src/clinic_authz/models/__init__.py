# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz
from clinic_authz.models.base import Base
from clinic_authz.models.relations import (
    Appointment,
    Doctor,
    MedicalDossier,
    MedicalHistoryEntry,
    Notification,
)
from clinic_authz.models.security import DoctorManager, Permission, RolePermission, User, UserPermission

__all__ = [
    "Base",
    "User",
    "Permission",
    "RolePermission",
    "UserPermission",
    "DoctorManager",
    "Doctor",
    "Appointment",
    "MedicalDossier",
    "MedicalHistoryEntry",
    "Notification",
]
