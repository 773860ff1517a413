"""
Admin Endpoint Tests for the VidGro Backend API.

Tests admin-only endpoints that require X-Api-Key / X-Admin-Key authentication.
"""
import pytest
from unittest.mock import MagicMock
from fastapi import HTTPException
from fastapi.testclient import TestClient

from VidGroBackend.services.auth_service import AuthService
from shared.config import BackendConfig

ADMIN_ENDPOINTS = [
    ("post", "/admin/env-sync"),
    ("post", "/api/admin/env-sync"),
    ("post", "/admin/clear-config-cache"),
    ("post", "/api/admin/database-backup"),
    ("get", "/api/admin/database-backup/list"),
    ("post", "/api/admin/database-backup/delete"),
]


class TestAdminAuthentication:
    """Test admin API key authentication."""

    @pytest.mark.parametrize("method,path", ADMIN_ENDPOINTS)
    def test_admin_endpoint_without_key(self, client: TestClient, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json()["detail"] == "admin_unauthorized"

    @pytest.mark.parametrize("method,path", ADMIN_ENDPOINTS)
    def test_admin_endpoint_with_invalid_key(self, client: TestClient, method, path):
        response = getattr(client, method)(path, headers={"X-Admin-Key": "wrong_key"})
        assert response.status_code == 401

    def test_x_api_key_header_accepted(self, client: TestClient):
        response = client.post("/admin/clear-config-cache", headers={"x-api-key": "test_admin_key"})
        assert response.status_code == 200

    def test_public_endpoints_need_no_key(self, client: TestClient):
        assert client.get("/client-runtime-config").status_code == 200
        assert client.get("/health").status_code == 200


def _request(headers=None):
    request = MagicMock()
    request.headers = headers or {}
    request.url.path = "/admin/env-sync"
    return request


class TestAuthService:
    def test_missing_key_allowed_outside_production(self):
        AuthService(BackendConfig(APP_ENV="development", ADMIN_API_KEY="")).require_admin(_request())

    def test_missing_key_in_production_is_server_error(self):
        svc = AuthService(BackendConfig(APP_ENV="production", ADMIN_API_KEY=""))
        with pytest.raises(HTTPException) as exc_info:
            svc.require_admin(_request())
        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "admin_api_key_missing"

    def test_matching_key_passes(self):
        svc = AuthService(BackendConfig(APP_ENV="production", ADMIN_API_KEY="k" * 40))
        svc.require_admin(_request({"x-admin-key": "k" * 40}))

    def test_key_is_compared_after_strip(self):
        svc = AuthService(BackendConfig(ADMIN_API_KEY="secret"))
        svc.require_admin(_request({"x-api-key": "  secret  "}))
        with pytest.raises(HTTPException):
            svc.require_admin(_request({"x-api-key": "Secret"}))
