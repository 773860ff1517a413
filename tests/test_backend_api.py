"""
HTTP Integration Tests for the VidGro Backend API.

Exercises every route through FastAPI's TestClient with services built around
in-memory Supabase fakes. Validates request/response contracts and error
handling.
"""
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from VidGroBackend.services.backup_service import encode_inline_token
from VidGroBackend.services.runtime_config_service import RuntimeConfigService


class TestHealthEndpoints:
    """Test health check and monitoring endpoints."""

    def test_health_basic(self, client: TestClient, config_service):
        config_service.get_or_resolve("production")
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "OK"
        assert data["cacheSize"] == 1
        assert data["platform"] == "fastapi"
        assert data["uptime"] >= 0

    def test_test_endpoints(self, client: TestClient):
        assert client.get("/test").status_code == 200
        data = client.get("/test-env").json()
        assert data["NODE_ENV"] == "test"
        assert data["isDevelopment"] is False

    def test_health_supabase(self, client: TestClient):
        data = client.get("/health/supabase").json()
        assert data["ok"] is True
        assert data["rows"] == 2

    def test_metrics_endpoint(self, client: TestClient):
        client.get("/health")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "backend_http_requests_total" in response.text

    def test_request_id_echoed(self, client: TestClient):
        response = client.get("/health", headers={"x-request-id": "req-123"})
        assert response.headers["x-request-id"] == "req-123"


class TestClientRuntimeConfig:
    def test_first_fetch_not_cached(self, client: TestClient):
        response = client.get("/client-runtime-config")
        assert response.status_code == 200
        body = response.json()
        assert body["cached"] is False
        assert "timestamp" not in body
        assert body["environment"] == "production"
        assert body["data"]["supabase"]["url"] == "https://mobile-project.supabase.co"
        assert body["data"]["supabase"]["anonKey"] == "mobile-anon-key"

    def test_security_headers(self, client: TestClient):
        response = client.get("/api/client-runtime-config")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-XSS-Protection"] == "1; mode=block"
        assert response.headers["Cache-Control"] == "private, max-age=300"

    def test_second_fetch_cached_with_timestamp(self, client: TestClient, clock):
        client.get("/client-runtime-config")
        body = client.get("/client-runtime-config").json()
        assert body["cached"] is True
        assert body["timestamp"] == clock.now_ms

    def test_environment_from_header_then_query(self, client: TestClient):
        assert client.get("/client-runtime-config", headers={"x-env": "staging"}).json()["environment"] == "staging"
        assert client.get("/client-runtime-config?env=dev").json()["environment"] == "dev"
        both = client.get("/client-runtime-config?env=dev", headers={"x-env": "staging"})
        assert both.json()["environment"] == "staging"

    def test_unresolved_config_returns_503(self, client: TestClient, app_context):
        object.__setattr__(
            app_context,
            "config_service",
            RuntimeConfigService(environ={}, allow_insecure_fallback=False),
        )
        response = client.get("/client-runtime-config")
        assert response.status_code == 503
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "Service temporarily unavailable"
        assert "not properly set up" in body["message"]


class TestEnvSync:
    def test_override_applied_and_served(self, client: TestClient, admin_headers):
        client.get("/client-runtime-config")
        response = client.post(
            "/admin/env-sync",
            json={"SUPABASE_URL": "https://override.supabase.co", "supabaseAnonKey": "override-key"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["overrides"] == {"supabaseUrl": "https://override.supabase.co", "supabaseAnonKey": "override-key"}

        config = client.get("/client-runtime-config").json()
        assert config["cached"] is False
        assert config["data"]["supabase"]["url"] == "https://override.supabase.co"

    def test_mobile_alias_preferred(self, client: TestClient, admin_headers):
        body = client.post(
            "/api/admin/env-sync",
            json={
                "MOBILE_SUPABASE_URL": "https://mobile-override.supabase.co",
                "SUPABASE_URL": "https://generic-override.supabase.co",
                "MOBILE_SUPABASE_ANON_KEY": "m-key",
                "ADMOB_REWARDED_ID": "ca-app-pub-9/9",
            },
            headers=admin_headers,
        ).json()
        assert body["overrides"]["supabaseUrl"] == "https://mobile-override.supabase.co"
        data = client.get("/client-runtime-config").json()["data"]
        assert data["admob"]["rewardedId"] == "ca-app-pub-9/9"

    def test_missing_fields_returns_400(self, client: TestClient, admin_headers):
        response = client.post("/admin/env-sync", json={"SUPABASE_URL": "https://x.supabase.co"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Missing SUPABASE URL or ANON KEY"

    def test_empty_body_returns_400(self, client: TestClient, admin_headers):
        response = client.post("/admin/env-sync", headers=admin_headers)
        assert response.status_code == 400

    def test_clear_cache(self, client: TestClient, admin_headers):
        client.get("/client-runtime-config")
        body = client.post("/admin/clear-config-cache", headers=admin_headers).json()
        assert body == {"success": True, "message": "Config cache cleared", "cleared": 1}


class TestDatabaseBackup:
    def test_create_backup(self, client: TestClient, admin_headers, fake_storage):
        response = client.post(
            "/api/admin/database-backup",
            json={"backupType": "users", "customName": "nightly"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["filename"].startswith("nightly-")
        assert body["storage"]["uploaded"] is True
        assert body["storage"]["bucket"] == "database-backups"
        assert body["storage"]["signedUrl"]
        assert body["size"].endswith(" KB")
        assert body["tables"] == ["profiles"]
        assert ("database-backups", body["filename"]) in fake_storage.objects

    def test_create_backup_defaults_to_full(self, client: TestClient, admin_headers):
        body = client.post("/api/admin/database-backup", headers=admin_headers).json()
        assert body["backupType"] == "full"

    def test_inline_download_round_trip(self, client: TestClient, admin_headers, fake_storage):
        fake_storage.fail_upload = True
        body = client.post("/api/admin/database-backup", json={"backupType": "full"}, headers=admin_headers).json()
        assert body["storage"]["uploaded"] is False

        response = client.get(body["filePath"])
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/sql")
        expected_name = parse_qs(urlparse(body["filePath"]).query)["filename"][0]
        assert response.headers["content-disposition"] == f'attachment; filename="{expected_name}"'
        assert response.text.startswith("-- VidGro Database Backup")
        assert response.text.rstrip().endswith("COMMIT;")

    def test_download_requires_token(self, client: TestClient):
        response = client.get("/backup")
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_download_invalid_token(self, client: TestClient):
        assert client.get("/backup?token=%25%25%25").status_code == 500

    def test_download_sanitizes_filename(self, client: TestClient):
        token = encode_inline_token("SELECT 1;")
        response = client.get("/backup", params={"token": token, "filename": 'evil"\r\nname.sql'})
        assert response.headers["content-disposition"] == 'attachment; filename="evil-name.sql"'
        assert response.text == "SELECT 1;"

    def test_list_backups(self, client: TestClient, admin_headers, fake_storage):
        fake_storage.listing["database-backups"] = [
            {"id": "1", "name": "a.sql", "created_at": "2026-01-01", "updated_at": "2026-01-01", "metadata": {"size": 10}},
        ]
        body = client.get("/api/admin/database-backup/list", headers=admin_headers).json()
        assert body["success"] is True
        assert body["backups"][0]["name"] == "a.sql"
        assert body["backups"][0]["size"] == 10

    def test_list_backups_custom_bucket(self, client: TestClient, admin_headers, fake_storage):
        client.get("/api/admin/database-backup/list?bucket=archive", headers=admin_headers)
        assert fake_storage.list_calls[-1]["bucket"] == "archive"

    def test_list_backups_storage_error(self, client: TestClient, admin_headers, fake_storage):
        fake_storage.fail_list = True
        response = client.get("/api/admin/database-backup/list", headers=admin_headers)
        assert response.status_code == 500
        assert response.json()["success"] is False

    def test_list_backups_without_storage(self, client: TestClient, admin_headers, backup_service):
        backup_service.storage = None
        response = client.get("/api/admin/database-backup/list", headers=admin_headers)
        assert response.status_code == 500
        assert response.json()["error"] == "storage_unavailable"

    def test_delete_backup(self, client: TestClient, admin_headers, fake_storage):
        fake_storage.objects[("database-backups", "a.sql")] = b"--"
        body = client.post("/api/admin/database-backup/delete", json={"path": "a.sql"}, headers=admin_headers).json()
        assert body["success"] is True
        assert body["path"] == "a.sql"
        assert body["bucket"] == "database-backups"

    def test_delete_missing_path_field(self, client: TestClient, admin_headers):
        response = client.post("/api/admin/database-backup/delete", json={}, headers=admin_headers)
        assert response.status_code == 400

    def test_delete_nonexistent_backup(self, client: TestClient, admin_headers):
        response = client.post("/api/admin/database-backup/delete", json={"path": "ghost.sql"}, headers=admin_headers)
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert "not found" in body["message"]


class TestUnexpectedErrors:
    def test_unhandled_exception_returns_json_500(self, client: TestClient, admin_headers, backup_service, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("assembly exploded")

        monkeypatch.setattr(backup_service, "generate_backup", boom)
        response = client.post("/api/admin/database-backup", json={}, headers=admin_headers)
        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert "assembly exploded" not in body["message"]
