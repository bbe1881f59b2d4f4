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
Resource-id extractors for route-scoped guards.

An extractor is an async callable (request, lookup) -> Optional[int] that
finds the resource instance a check is about. It may need a lookup, e.g. a
medical history entry resolves to its dossier and then to the patient.
None means no id could be determined; ResourceNotFound means a referenced
parent row does not exist.
"""

import json
from typing import Any, Awaitable, Callable, Optional

from fastapi import Request

from clinic_authz.authorization.ownership import RelationshipLookup
from clinic_authz.services.exceptions import ResourceNotFound, ValidationError

ResourceIdExtractor = Callable[[Request, RelationshipLookup], Awaitable[Optional[int]]]


def _to_int(name: str, value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"'{name}' must be an integer.") from e


def path_param(name: str) -> ResourceIdExtractor:
    async def extract(request: Request, lookup: RelationshipLookup) -> Optional[int]:
        return _to_int(name, request.path_params.get(name))

    return extract


def query_param(name: str) -> ResourceIdExtractor:
    async def extract(request: Request, lookup: RelationshipLookup) -> Optional[int]:
        return _to_int(name, request.query_params.get(name))

    return extract


def body_field(name: str) -> ResourceIdExtractor:
    async def extract(request: Request, lookup: RelationshipLookup) -> Optional[int]:
        body = await request.body()
        if not body:
            return None
        try:
            payload = json.loads(body)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        return _to_int(name, payload.get(name))

    return extract


def first_of(*extractors: ResourceIdExtractor) -> ResourceIdExtractor:
    async def extract(request: Request, lookup: RelationshipLookup) -> Optional[int]:
        for extractor in extractors:
            value = await extractor(request, lookup)
            if value is not None:
                return value
        return None

    return extract


_patient_id_field = first_of(path_param("patientId"), query_param("patientId"), body_field("patientId"))


async def dossier_patient_id(request: Request, lookup: RelationshipLookup) -> Optional[int]:
    """
    Patient owning the medical dossier a route is about, from whichever
    parameter the route carries: patientId, dossier id, appointmentId or entryId.
    """
    patient_id = await _patient_id_field(request, lookup)
    if patient_id is not None:
        return patient_id

    params = request.path_params

    dossier_id = _to_int("id", params.get("id"))
    if dossier_id is not None:
        patient_id = await lookup.dossier_patient_id(dossier_id)
        if patient_id is None:
            raise ResourceNotFound("Medical dossier", dossier_id)
        return patient_id

    appointment_id = _to_int("appointmentId", params.get("appointmentId"))
    if appointment_id is not None:
        patient_id = await lookup.appointment_patient_id(appointment_id)
        if patient_id is None:
            raise ResourceNotFound("Appointment", appointment_id)
        return patient_id

    entry_id = _to_int("entryId", params.get("entryId"))
    if entry_id is not None:
        entry_dossier_id = await lookup.history_entry_dossier_id(entry_id)
        if entry_dossier_id is None:
            raise ResourceNotFound("Medical history entry", entry_id)
        patient_id = await lookup.dossier_patient_id(entry_dossier_id)
        if patient_id is None:
            raise ResourceNotFound("Medical dossier", entry_dossier_id)
        return patient_id

    return None
