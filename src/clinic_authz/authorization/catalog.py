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
Permission Catalog
Registry of the permission identifiers the application knows about.
Entries come from the compiled list below, never from user input.
"""

from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.models.security import Permission
from clinic_authz.services.exceptions import UnknownPermissionError
from clinic_authz.utils.logger import logger


class CatalogEntry(NamedTuple):
    name: str
    category: str
    description: str


class PermissionCatalog:
    def __init__(self, entries: Iterable[CatalogEntry] = ()) -> None:
        self._entries: Dict[str, CatalogEntry] = {}
        for entry in entries:
            self.register(entry.name, entry.category, entry.description)

    def register(self, name: str, category: str, description: str = "") -> CatalogEntry:
        resource, sep, action = name.partition(":")
        if not sep or not resource or not action:
            raise ValueError(f"Permission names are namespaced as 'resource:action', got '{name}'.")
        existing = self._entries.get(name)
        if existing is not None and existing.category != category:
            raise ValueError(f"Permission '{name}' already registered under category '{existing.category}'.")
        entry = CatalogEntry(name, category, description)
        self._entries[name] = entry
        return entry

    def is_known(self, name: str) -> bool:
        return name in self._entries

    def require_known(self, name: str) -> CatalogEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownPermissionError(name)
        return entry

    def get(self, name: str) -> Optional[CatalogEntry]:
        return self._entries.get(name)

    def list_by_category(self, category: str) -> List[CatalogEntry]:
        return sorted((e for e in self._entries.values() if e.category == category), key=lambda e: e.name)

    def categories(self) -> List[str]:
        return sorted({e.category for e in self._entries.values()})

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(sorted(self._entries.values(), key=lambda e: (e.category, e.name)))

    def __len__(self) -> int:
        return len(self._entries)


# User permissions
USER_VIEW_ALL = "user:view_all"
USER_VIEW_OWN = "user:view_own"
USER_CREATE = "user:create"
USER_UPDATE_ALL = "user:update_all"
USER_UPDATE_OWN = "user:update_own"
USER_DELETE = "user:delete"

# Notification permissions
NOTIFICATION_VIEW_ALL = "notification:view_all"
NOTIFICATION_VIEW_OWN = "notification:view_own"
NOTIFICATION_UPDATE_OWN = "notification:update_own"
NOTIFICATION_CREATE = "notification:create"
NOTIFICATION_MANAGE_ALL = "notification:manage_all"

# Doctor permissions
DOCTOR_VIEW_ALL = "doctor:view_all"
DOCTOR_VIEW_OWN = "doctor:view_own"
DOCTOR_CREATE = "doctor:create"
DOCTOR_UPDATE_ALL = "doctor:update_all"
DOCTOR_UPDATE_OWN = "doctor:update_own"
DOCTOR_DELETE = "doctor:delete"
DOCTOR_MANAGE = "doctor:manage"
DOCTOR_MANAGE_AVAILABILITY = "doctor:manage_availability"

# Appointment permissions
APPOINTMENT_VIEW_ALL = "appointment:view_all"
APPOINTMENT_VIEW_OWN = "appointment:view_own"
APPOINTMENT_CREATE = "appointment:create"
APPOINTMENT_UPDATE_ALL = "appointment:update_all"
APPOINTMENT_UPDATE_OWN = "appointment:update_own"
APPOINTMENT_DELETE = "appointment:delete"

# Specialty permissions
SPECIALTY_VIEW = "specialty:view"
SPECIALTY_CREATE = "specialty:create"
SPECIALTY_UPDATE = "specialty:update"
SPECIALTY_DELETE = "specialty:delete"

# Medical dossier permissions
MEDICAL_DOSSIER_VIEW_ALL = "medicalDossier:view_all"
MEDICAL_DOSSIER_MANAGE = "medicalDossier:manage"

# Permission management permissions
PERMISSION_VIEW_ALL = "permission:view_all"
PERMISSION_MANAGE = "permission:manage"


DEFAULT_ENTRIES = (
    CatalogEntry(USER_VIEW_ALL, "user", "View every user account"),
    CatalogEntry(USER_VIEW_OWN, "user", "View own user account"),
    CatalogEntry(USER_CREATE, "user", "Create user accounts"),
    CatalogEntry(USER_UPDATE_ALL, "user", "Update any user account"),
    CatalogEntry(USER_UPDATE_OWN, "user", "Update own user account"),
    CatalogEntry(USER_DELETE, "user", "Delete user accounts"),
    CatalogEntry(NOTIFICATION_VIEW_ALL, "notification", "View notifications of any user"),
    CatalogEntry(NOTIFICATION_VIEW_OWN, "notification", "View own notifications"),
    CatalogEntry(NOTIFICATION_UPDATE_OWN, "notification", "Mark own notifications"),
    CatalogEntry(NOTIFICATION_CREATE, "notification", "Send notifications"),
    CatalogEntry(NOTIFICATION_MANAGE_ALL, "notification", "Manage notifications of any user"),
    CatalogEntry(DOCTOR_VIEW_ALL, "doctor", "View every doctor profile"),
    CatalogEntry(DOCTOR_VIEW_OWN, "doctor", "View own doctor profile"),
    CatalogEntry(DOCTOR_CREATE, "doctor", "Create doctor profiles"),
    CatalogEntry(DOCTOR_UPDATE_ALL, "doctor", "Update any doctor profile"),
    CatalogEntry(DOCTOR_UPDATE_OWN, "doctor", "Update own doctor profile"),
    CatalogEntry(DOCTOR_DELETE, "doctor", "Delete doctor profiles"),
    CatalogEntry(DOCTOR_MANAGE, "doctor", "Manage doctors"),
    CatalogEntry(DOCTOR_MANAGE_AVAILABILITY, "doctor", "Manage doctor availability"),
    CatalogEntry(APPOINTMENT_VIEW_ALL, "appointment", "View every appointment"),
    CatalogEntry(APPOINTMENT_VIEW_OWN, "appointment", "View own appointments"),
    CatalogEntry(APPOINTMENT_CREATE, "appointment", "Book appointments"),
    CatalogEntry(APPOINTMENT_UPDATE_ALL, "appointment", "Update any appointment"),
    CatalogEntry(APPOINTMENT_UPDATE_OWN, "appointment", "Update own appointments"),
    CatalogEntry(APPOINTMENT_DELETE, "appointment", "Delete appointments"),
    CatalogEntry(SPECIALTY_VIEW, "specialty", "View specialties"),
    CatalogEntry(SPECIALTY_CREATE, "specialty", "Create specialties"),
    CatalogEntry(SPECIALTY_UPDATE, "specialty", "Update specialties"),
    CatalogEntry(SPECIALTY_DELETE, "specialty", "Delete specialties"),
    CatalogEntry(MEDICAL_DOSSIER_VIEW_ALL, "medicalDossier", "View any medical dossier"),
    CatalogEntry(MEDICAL_DOSSIER_MANAGE, "medicalDossier", "Manage medical dossiers"),
    CatalogEntry(PERMISSION_VIEW_ALL, "permission", "View permissions and bindings"),
    CatalogEntry(PERMISSION_MANAGE, "permission", "Manage permissions and bindings"),
)

default_catalog = PermissionCatalog(DEFAULT_ENTRIES)


async def seed_catalog(session: AsyncSession, catalog: PermissionCatalog = default_catalog) -> int:
    """
    Inserts a Permission row for every catalog entry that has none yet.
    Existing rows are left untouched, so admin deactivations survive a re-seed.
    """
    result = await session.execute(select(Permission.name))
    existing = set(result.scalars().all())

    created = 0
    for entry in catalog:
        if entry.name in existing:
            continue
        session.add(Permission(name=entry.name, category=entry.category, description=entry.description))
        created += 1

    if created:
        await session.commit()
        logger.info(f"Seeded {created} catalog permissions")
    return created
