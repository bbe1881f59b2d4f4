# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

from unittest.mock import AsyncMock, MagicMock, patch

from fastapi.testclient import TestClient

from clinic_authz.main import app, hello_world


def test_hello_world() -> None:
    assert hello_world() == {"message": "Hello World!"}


def test_lifespan() -> None:
    """Test that lifespan logs startup and shutdown events."""
    with patch("clinic_authz.main.logger") as mock_logger:
        with TestClient(app) as client:
            client.get("/")  # Trigger startup
            assert mock_logger.info.called
            args, _ = mock_logger.info.call_args_list[0]
            assert "Starting" in args[0]

        # Trigger shutdown
        assert mock_logger.info.call_count >= 2
        args, _ = mock_logger.info.call_args_list[-1]
        assert "Shutting down" in args[0]


def test_lifespan_seeds_catalog_when_enabled() -> None:
    maker = MagicMock()
    session = maker.return_value.__aenter__.return_value
    seed = AsyncMock(return_value=3)

    with (
        patch("clinic_authz.main.SEED_PERMISSIONS", True),
        patch("clinic_authz.main.async_session_maker", maker),
        patch("clinic_authz.main.seed_catalog", seed),
    ):
        with TestClient(app):
            pass

    seed.assert_awaited_once_with(session)


def test_lifespan_skips_seeding_by_default() -> None:
    seed = AsyncMock()

    with patch("clinic_authz.main.seed_catalog", seed):
        with TestClient(app):
            pass

    seed.assert_not_awaited()


def test_http_errors_use_message_shape() -> None:
    with TestClient(app) as client:
        response = client.get("/no-such-route")

    assert response.status_code == 404
    assert response.json() == {"message": "Not Found"}


def test_routers_mounted() -> None:
    paths = app.openapi()["paths"]

    assert "/api/auth/permissions" in paths
    assert "/api/permissions/" in paths
    assert "/api/role-permissions/check/{role}/{permission_name}" in paths
    assert "/api/user-permissions/{id}/extend" in paths
