# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from datetime import datetime, timedelta, timezone

import pytest

from clinic_authz.authorization.base import GLOBAL_SCOPE, GrantSource, PermissionRef, Scope, ScopeTier, scope_matches

GLOBAL = Scope()
DOCTORS = Scope(resource_type="doctor")
DOCTOR_7 = Scope(resource_type="doctor", resource_id=7)
DOCTOR_9 = Scope(resource_type="doctor", resource_id=9)
APPOINTMENTS = Scope(resource_type="appointment")


def test_scope_tiers() -> None:
    assert GLOBAL_SCOPE.tier is ScopeTier.GLOBAL
    assert DOCTORS.tier is ScopeTier.TYPE
    assert DOCTOR_7.tier is ScopeTier.INSTANCE
    # An id without a type is still an instance request.
    assert Scope(resource_id=3).tier is ScopeTier.INSTANCE


@pytest.mark.parametrize(
    "binding, requested, expected",
    [
        (GLOBAL, GLOBAL, True),
        (GLOBAL, DOCTORS, False),
        (GLOBAL, DOCTOR_7, False),
        (DOCTORS, GLOBAL, False),
        (DOCTORS, DOCTORS, True),
        (DOCTORS, APPOINTMENTS, False),
        (DOCTORS, DOCTOR_7, False),
        (DOCTOR_7, GLOBAL, False),
        (DOCTOR_7, DOCTORS, False),
        (DOCTOR_7, DOCTOR_7, True),
        (DOCTOR_7, DOCTOR_9, False),
        (Scope(resource_type="appointment", resource_id=7), DOCTOR_7, False),
    ],
)
def test_exact_tier_matching(binding: Scope, requested: Scope, expected: bool) -> None:
    assert scope_matches(binding, requested) is expected


def test_scope_aliases_and_str() -> None:
    scope = Scope.model_validate({"resourceType": "doctor", "resourceId": 7})

    assert scope == DOCTOR_7
    assert str(scope) == "doctor:7"
    assert str(DOCTORS) == "doctor:*"
    assert str(GLOBAL) == "global"


def test_permission_ref_matches_name_and_scope() -> None:
    ref = PermissionRef(id=1, name="doctor:manage", source=GrantSource.ROLE, resource_type="doctor", resource_id=7)

    assert ref.scope == DOCTOR_7
    assert ref.matches("doctor:manage", DOCTOR_7)
    assert not ref.matches("doctor:view_all", DOCTOR_7)
    assert not ref.matches("doctor:manage", DOCTORS)


def test_permission_ref_expiry_mixes_aware_and_naive() -> None:
    now = datetime(2025, 6, 1, 12, 0)
    aware_past = datetime(2025, 6, 1, 11, 0, tzinfo=timezone.utc)
    ref = PermissionRef(id=1, name="user:view_all", source=GrantSource.USER, expires_at=aware_past)

    assert ref.is_expired(now)
    assert not ref.model_copy(update={"expires_at": now + timedelta(seconds=1)}).is_expired(now)
    assert not ref.model_copy(update={"expires_at": None}).is_expired(now)
    # Expiry is inclusive of the boundary.
    assert ref.model_copy(update={"expires_at": now}).is_expired(now)


def test_permission_ref_serializes_camel_case() -> None:
    ref = PermissionRef(id=1, name="user:view_all", source=GrantSource.USER, is_granted=False, resource_type="user")

    dumped = ref.model_dump(by_alias=True)

    assert dumped["isGranted"] is False
    assert dumped["resourceType"] == "user"
    assert dumped["source"] == "user"
