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
Ownership & Relationship Checks
Structural ALLOW paths (self, doctor-patient, manager-doctor, dossier roles) tried before the
generic permission check. They only ever widen access: when no relationship
applies, the answer is whatever the Resolution Engine says.
"""

from typing import Optional, Protocol

from clinic_authz.authorization.base import GLOBAL_SCOPE, Role, Scope
from clinic_authz.authorization.catalog import (
    APPOINTMENT_VIEW_ALL,
    DOCTOR_MANAGE,
    MEDICAL_DOSSIER_MANAGE,
    MEDICAL_DOSSIER_VIEW_ALL,
    NOTIFICATION_MANAGE_ALL,
    NOTIFICATION_VIEW_ALL,
    PERMISSION_MANAGE,
    USER_UPDATE_ALL,
    USER_UPDATE_OWN,
    USER_VIEW_ALL,
)
from clinic_authz.authorization.engine import Decision, DecisionReason, ResolutionEngine
from clinic_authz.authorization.principal import Principal
from clinic_authz.services.exceptions import ResourceNotFound


class RelationshipLookup(Protocol):
    async def doctor_id_for_user(self, user_id: int) -> Optional[int]: ...

    async def is_doctor_manager(self, manager_id: int, doctor_id: int) -> bool: ...

    async def has_appointment(self, doctor_id: int, patient_id: int) -> bool: ...

    async def dossier_patient_id(self, dossier_id: int) -> Optional[int]: ...

    async def appointment_patient_id(self, appointment_id: int) -> Optional[int]: ...

    async def history_entry_dossier_id(self, entry_id: int) -> Optional[int]: ...

    async def notification_owner_id(self, notification_id: int) -> Optional[int]: ...


def _allow(reason: DecisionReason, permission: Optional[str] = None, scope: Optional[Scope] = None) -> Decision:
    return Decision(True, reason, permission, scope or GLOBAL_SCOPE)


def _doctor_scope(doctor_id: int) -> Scope:
    return Scope(resource_type="doctor", resource_id=doctor_id)


class OwnershipChecks:
    def __init__(self, engine: ResolutionEngine, lookup: RelationshipLookup):
        self.engine = engine
        self.lookup = lookup

    def _precheck(self, principal: Principal) -> Optional[Decision]:
        # Status is checked before any relationship path can allow.
        if not principal.is_active:
            return Decision(False, DecisionReason.INACTIVE_ACCOUNT)
        if principal.is_admin:
            return _allow(DecisionReason.ADMIN_BYPASS)
        return None

    async def can_access_doctor_appointments(self, principal: Principal, doctor_id: int) -> Decision:
        """A doctor sees their own schedule; a manager sees the doctors they manage."""
        early = self._precheck(principal)
        if early is not None:
            return early

        if principal.role == Role.DOCTOR.value:
            own_doctor_id = await self.lookup.doctor_id_for_user(principal.user_id)
            if own_doctor_id is not None and own_doctor_id == doctor_id:
                return _allow(DecisionReason.SELF_ACCESS, APPOINTMENT_VIEW_ALL, _doctor_scope(doctor_id))

        if await self.lookup.is_doctor_manager(principal.user_id, doctor_id):
            return _allow(DecisionReason.RELATIONSHIP, APPOINTMENT_VIEW_ALL, _doctor_scope(doctor_id))

        return await self.engine.resolve(principal, APPOINTMENT_VIEW_ALL)

    async def can_access_user_appointments(self, principal: Principal, target_user_id: int) -> Decision:
        early = self._precheck(principal)
        if early is not None:
            return early
        if principal.user_id == target_user_id:
            return _allow(DecisionReason.SELF_ACCESS, APPOINTMENT_VIEW_ALL)
        return await self.engine.resolve(principal, APPOINTMENT_VIEW_ALL)

    async def can_manage_doctor(self, principal: Principal, doctor_id: int) -> Decision:
        """Responsables must be explicitly assigned as the doctor's manager."""
        early = self._precheck(principal)
        if early is not None:
            return early

        if principal.role == Role.RESPONSABLE.value:
            if await self.lookup.is_doctor_manager(principal.user_id, doctor_id):
                return _allow(DecisionReason.RELATIONSHIP, DOCTOR_MANAGE, _doctor_scope(doctor_id))

        return await self.engine.resolve(principal, DOCTOR_MANAGE)

    async def can_access_user_notifications(self, principal: Principal, target_user_id: int) -> Decision:
        early = self._precheck(principal)
        if early is not None:
            return early
        if principal.user_id == target_user_id:
            return _allow(DecisionReason.SELF_ACCESS, NOTIFICATION_VIEW_ALL)
        return await self.engine.resolve(principal, NOTIFICATION_VIEW_ALL)

    async def can_manage_user_notifications(self, principal: Principal, target_user_id: int) -> Decision:
        early = self._precheck(principal)
        if early is not None:
            return early
        if principal.user_id == target_user_id:
            return _allow(DecisionReason.SELF_ACCESS, NOTIFICATION_MANAGE_ALL)
        return await self.engine.resolve(principal, NOTIFICATION_MANAGE_ALL)

    async def can_access_notification(self, principal: Principal, notification_id: int) -> Decision:
        early = self._precheck(principal)
        if early is not None:
            return early

        owner_id = await self.lookup.notification_owner_id(notification_id)
        if owner_id is None:
            raise ResourceNotFound("Notification", notification_id)
        if owner_id == principal.user_id:
            return _allow(DecisionReason.SELF_ACCESS, NOTIFICATION_MANAGE_ALL)
        return await self.engine.resolve(principal, NOTIFICATION_MANAGE_ALL)

    async def can_manage_specialty(self, principal: Principal, action: str) -> Decision:
        return await self.engine.resolve(principal, f"specialty:{action.lower()}")

    async def can_view_user(self, principal: Principal, target_user_id: int) -> Decision:
        early = self._precheck(principal)
        if early is not None:
            return early
        if principal.user_id == target_user_id:
            return _allow(DecisionReason.SELF_ACCESS, USER_VIEW_ALL)
        return await self.engine.resolve(principal, USER_VIEW_ALL)

    async def can_update_user(self, principal: Principal, target_user_id: int) -> Decision:
        if principal.user_id == target_user_id:
            return await self.engine.resolve(principal, USER_UPDATE_OWN, "user", target_user_id)
        return await self.engine.resolve(principal, USER_UPDATE_ALL)

    async def can_manage_permissions(self, principal: Principal) -> Decision:
        return await self.engine.resolve(principal, PERMISSION_MANAGE)

    async def can_access_medical_dossier(self, principal: Principal, patient_id: int) -> Decision:
        """
        Responsables see every dossier; patients see their own; doctors see the
        dossier of any patient who has at least one appointment with them.
        """
        early = self._precheck(principal)
        if early is not None:
            return early

        scope = Scope(resource_type="medicalDossier", resource_id=patient_id)
        if principal.role == Role.RESPONSABLE.value:
            return _allow(DecisionReason.RELATIONSHIP, MEDICAL_DOSSIER_VIEW_ALL, scope)

        if principal.role == Role.PATIENT.value and principal.user_id == patient_id:
            return _allow(DecisionReason.SELF_ACCESS, MEDICAL_DOSSIER_VIEW_ALL, scope)

        if principal.role == Role.DOCTOR.value:
            doctor_id = await self.lookup.doctor_id_for_user(principal.user_id)
            if doctor_id is not None and await self.lookup.has_appointment(doctor_id, patient_id):
                return _allow(DecisionReason.RELATIONSHIP, MEDICAL_DOSSIER_VIEW_ALL, scope)

        return await self.engine.resolve(principal, MEDICAL_DOSSIER_VIEW_ALL)

    async def can_manage_medical_dossier(self, principal: Principal) -> Decision:
        """Doctors and responsables manage dossiers by role; anyone else needs the permission."""
        early = self._precheck(principal)
        if early is not None:
            return early
        if principal.role in (Role.DOCTOR.value, Role.RESPONSABLE.value):
            return _allow(DecisionReason.RELATIONSHIP, MEDICAL_DOSSIER_MANAGE)
        return await self.engine.resolve(principal, MEDICAL_DOSSIER_MANAGE)
