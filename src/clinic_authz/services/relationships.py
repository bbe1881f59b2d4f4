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
SQL-backed relationship lookups used by ownership checks and resource-id extractors.
"""

from typing import Any, Optional

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_authz.models.relations import Appointment, Doctor, MedicalDossier, MedicalHistoryEntry, Notification
from clinic_authz.models.security import DoctorManager
from clinic_authz.services.exceptions import StoreUnavailable
from clinic_authz.utils.logger import logger


class SqlRelationshipLookup:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def doctor_id_for_user(self, user_id: int) -> Optional[int]:
        return await self._scalar(select(Doctor.id).where(Doctor.user_id == user_id))

    async def is_doctor_manager(self, manager_id: int, doctor_id: int) -> bool:
        stmt = select(DoctorManager.id).where(
            DoctorManager.doctor_id == doctor_id,
            DoctorManager.manager_id == manager_id,
        )
        return await self._scalar(stmt) is not None

    async def has_appointment(self, doctor_id: int, patient_id: int) -> bool:
        stmt = (
            select(Appointment.id)
            .where(Appointment.doctor_id == doctor_id, Appointment.patient_id == patient_id)
            .limit(1)
        )
        return await self._scalar(stmt) is not None

    async def dossier_patient_id(self, dossier_id: int) -> Optional[int]:
        return await self._scalar(select(MedicalDossier.patient_id).where(MedicalDossier.id == dossier_id))

    async def appointment_patient_id(self, appointment_id: int) -> Optional[int]:
        return await self._scalar(select(Appointment.patient_id).where(Appointment.id == appointment_id))

    async def history_entry_dossier_id(self, entry_id: int) -> Optional[int]:
        return await self._scalar(select(MedicalHistoryEntry.dossier_id).where(MedicalHistoryEntry.id == entry_id))

    async def notification_owner_id(self, notification_id: int) -> Optional[int]:
        return await self._scalar(select(Notification.user_id).where(Notification.id == notification_id))

    async def _scalar(self, stmt: Select[Any]) -> Any:
        try:
            result = await self.db.execute(stmt)
            return result.scalars().first()
        except SQLAlchemyError as e:
            logger.error(f"Relationship lookup failed: {e}")
            raise StoreUnavailable("Relationship lookup failed") from e
