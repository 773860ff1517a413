"""
Pytest configuration and fixtures for backend API tests.

Provides in-memory stand-ins for the Supabase PostgREST and Storage clients
and a FastAPI TestClient wired to services built around them.
"""
import os
import pytest
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient


# Set test environment variables before ANY imports
os.environ["APP_ENV"] = "test"
os.environ["OTEL_ENABLED"] = "0"
os.environ["SENTRY_DSN"] = ""
os.environ["ADMIN_API_KEY"] = "test_admin_key"
os.environ["LOG_TO_FILE"] = "false"
for _name in (
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "MOBILE_SUPABASE_URL",
    "MOBILE_SUPABASE_ANON_KEY",
    "BACKUP_TABLES",
):
    os.environ.pop(_name, None)


from shared.supabase_client import SupabaseError  # noqa: E402


class FakeSupabaseDb:
    """PostgREST stand-in backed by a dict of table -> rows."""

    host = "test-project.supabase.co"

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = dict(tables or {})
        self.rpc_results: Dict[str, Any] = {}
        self.rpc_errors: set = set()
        self.fail_select_at: Dict[str, int] = {}
        self.select_calls: List[tuple] = []
        self.rpc_calls: List[tuple] = []

    def enabled(self) -> bool:
        return True

    def probe(self, table: str) -> int:
        if table not in self.tables:
            raise SupabaseError(f"probe {table} failed: HTTP 404: relation does not exist")
        return len(self.tables[table])

    def select(self, table, filters=None, columns="*", limit=None, offset=None, order_by=None):
        start = offset or 0
        self.select_calls.append((table, limit, start, order_by))
        if table in self.fail_select_at and start >= self.fail_select_at[table]:
            raise SupabaseError(f"SELECT {table} failed: HTTP 500: upstream timeout")
        rows = list(self.tables[table])
        if order_by:
            key, _, direction = order_by.partition(".")
            rows.sort(key=lambda r: r.get(key), reverse=direction == "desc")
        rows = rows[start:]
        return rows[:limit] if limit else rows

    def rpc(self, function, params=None):
        self.rpc_calls.append((function, params))
        if function in self.rpc_errors:
            raise SupabaseError(f"RPC '{function}' failed: HTTP 404: function not found")
        result = self.rpc_results.get(function)
        return result(params) if callable(result) else result


class FakeStorage:
    """Supabase Storage stand-in keeping uploaded objects in memory."""

    base = "https://test-project.supabase.co/storage/v1"

    def __init__(self):
        self.buckets: Dict[str, Dict[str, Any]] = {}
        self.objects: Dict[tuple, bytes] = {}
        self.listing: Dict[str, List[Dict[str, Any]]] = {}
        self.fail_list_buckets = False
        self.fail_upload = False
        self.fail_sign = False
        self.fail_list = False
        self.fail_remove = False
        self.signed: List[tuple] = []
        self.list_calls: List[Dict[str, Any]] = []

    def list_buckets(self):
        if self.fail_list_buckets:
            raise SupabaseError("storage list_buckets failed: HTTP 403: not allowed")
        return list(self.buckets.values())

    def create_bucket(self, bucket, *, public=False):
        self.buckets[bucket] = {"id": bucket, "name": bucket, "public": public}
        return {"name": bucket}

    def upload(self, bucket, path, data, *, content_type="application/sql", upsert=True):
        if self.fail_upload:
            raise SupabaseError("storage upload failed: HTTP 500: internal error")
        self.objects[(bucket, path)] = data
        return {"Key": f"{bucket}/{path}"}

    def public_url(self, bucket, path):
        return f"{self.base}/object/public/{bucket}/{path}"

    def create_signed_url(self, bucket, path, expires_in):
        if self.fail_sign:
            raise SupabaseError("storage create_signed_url failed: HTTP 400")
        self.signed.append((bucket, path, expires_in))
        return f"{self.base}/object/sign/{bucket}/{path}?token=signed"

    def list_objects(self, bucket, *, prefix="", limit=100, offset=0, sort_column="created_at", sort_order="desc"):
        self.list_calls.append({"bucket": bucket, "limit": limit, "sort_column": sort_column, "sort_order": sort_order})
        if self.fail_list:
            raise SupabaseError("storage list_objects failed: HTTP 500")
        return list(self.listing.get(bucket, []))[:limit]

    def remove(self, bucket, paths):
        if self.fail_remove:
            raise SupabaseError("storage remove failed: HTTP 500")
        removed = []
        for p in paths:
            if (bucket, p) in self.objects:
                del self.objects[(bucket, p)]
                removed.append({"name": p, "bucket_id": bucket})
        return removed


class FakeClock:
    """Manually advanced clock; `__call__` returns epoch millis."""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now_ms = start_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


def sample_tables() -> Dict[str, List[Dict[str, Any]]]:
    return {
        "profiles": [
            {"id": "u1", "username": "alice", "coins": 120, "is_vip": True, "settings": {"theme": "dark"}},
            {"id": "u2", "username": "o'brien", "coins": 0, "is_vip": False, "settings": None},
        ],
        "videos": [
            {"id": "v1", "user_id": "u1", "title": "First", "views": 10, "duration_seconds": 30.5},
        ],
        "runtime_config": [],
    }


@pytest.fixture
def config_env() -> Dict[str, str]:
    return {
        "NODE_ENV": "production",
        "MOBILE_SUPABASE_URL": "https://mobile-project.supabase.co",
        "MOBILE_SUPABASE_ANON_KEY": "mobile-anon-key",
        "SUPABASE_URL": "https://generic-project.supabase.co",
        "SUPABASE_ANON_KEY": "generic-anon-key",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_db() -> FakeSupabaseDb:
    return FakeSupabaseDb(sample_tables())


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def config_service(config_env, clock):
    from VidGroBackend.services.runtime_config_service import RuntimeConfigService

    return RuntimeConfigService(environ=config_env, clock=clock)


@pytest.fixture
def backup_service(fake_db, fake_storage):
    from VidGroBackend.services.backup_service import BackupService

    return BackupService(db=fake_db, storage=fake_storage)


@pytest.fixture(scope="session")
def test_app():
    """
    Import and configure the FastAPI app for testing.
    """
    # Import the app which will use our test environment variables
    from VidGroBackend.app import app
    return app


@pytest.fixture
def app_context(config_service, backup_service, fake_db):
    from VidGroBackend.app_context import AppContext
    from VidGroBackend.services.auth_service import AuthService
    from VidGroBackend.services.health_service import HealthService
    from shared.config import load_backend_config
    import logging

    cfg = load_backend_config()
    return AppContext(
        logger=logging.getLogger("vidgro_backend"),
        cfg=cfg,
        config_service=config_service,
        backup_service=backup_service,
        auth_service=AuthService(cfg),
        health_service=HealthService(cfg, config_service, fake_db),
    )


@pytest.fixture
def client(test_app, app_context) -> Generator[TestClient, None, None]:
    """
    Create a FastAPI TestClient for making requests.
    """
    from VidGroBackend.app_context import get_app_context

    test_app.dependency_overrides[get_app_context] = lambda: app_context
    with TestClient(test_app, raise_server_exceptions=False) as test_client:
        yield test_client
    test_app.dependency_overrides.pop(get_app_context, None)


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    """Generate admin API key headers for testing admin endpoints."""
    return {"X-Admin-Key": os.environ.get("ADMIN_API_KEY", "test_admin_key")}
