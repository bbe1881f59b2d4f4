# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from datetime import timedelta

from clinic_authz.authorization.client import PermissionSnapshot
from clinic_authz.utils.clock import utcnow


def test_client_uses_exact_tier_rule(role_ref) -> None:
    snapshot = PermissionSnapshot.build(
        [role_ref("doctor:manage_availability"), role_ref("appointment:view_all", "appointment")]
    )

    assert snapshot.has_permission("doctor:manage_availability")
    assert not snapshot.has_permission("doctor:manage_availability", "doctor", 9)
    assert snapshot.has_permission("appointment:view_all", "appointment")
    assert not snapshot.has_permission("appointment:view_all", "appointment", 4)
    assert not snapshot.has_permission("appointment:view_all")


def test_client_denial_wins(role_ref, user_ref) -> None:
    snapshot = PermissionSnapshot.build(
        [
            role_ref("doctor:manage_availability", "doctor", 7),
            user_ref("doctor:manage_availability", is_granted=False, resource_type="doctor", resource_id=7),
        ]
    )

    assert not snapshot.has_permission("doctor:manage_availability", "doctor", 7)


def test_client_skips_expired_user_grants(user_ref) -> None:
    now = utcnow()
    snapshot = PermissionSnapshot.build(
        [
            user_ref("doctor:view_all", expires_at=now - timedelta(hours=1)),
            user_ref("user:view_all", expires_at=now + timedelta(hours=1)),
        ]
    )

    assert not snapshot.has_permission("doctor:view_all", now=now)
    assert snapshot.has_permission("user:view_all", now=now)


def test_client_any_all_and_resource_type(role_ref, user_ref) -> None:
    snapshot = PermissionSnapshot.build(
        [
            role_ref("appointment:view_all", "appointment", 3),
            role_ref("appointment:update_all", "appointment", 3),
            user_ref("appointment:delete", is_granted=False, resource_type="appointment", resource_id=3),
        ]
    )

    assert snapshot.has_any_permission(["appointment:delete", "appointment:view_all"], "appointment", 3)
    assert snapshot.has_all_permissions(["appointment:view_all", "appointment:update_all"], "appointment", 3)
    assert not snapshot.has_all_permissions(["appointment:view_all", "appointment:delete"], "appointment", 3)
    assert [p.name for p in snapshot.by_resource_type("appointment")] == [
        "appointment:view_all",
        "appointment:update_all",
    ]


def test_admin_snapshot_is_tagged_not_wildcard() -> None:
    snapshot = PermissionSnapshot.build([], is_admin=True)

    assert snapshot.has_permission("anything:at_all", "doctor", 1)
    assert snapshot.model_dump(by_alias=True) == {"all": [], "byCategory": {}, "isAdmin": True}


def test_snapshot_round_trips_wire_shape(role_ref) -> None:
    snapshot = PermissionSnapshot.build([role_ref("user:view_all", category="user")])

    restored = PermissionSnapshot.model_validate(snapshot.model_dump(mode="json", by_alias=True))

    assert restored.has_permission("user:view_all")
    assert list(restored.by_category) == ["user"]
