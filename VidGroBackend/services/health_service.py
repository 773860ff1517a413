"""
Health check service.

Provides the diagnostic payloads served by /health, /test and /test-env, plus
a connectivity probe for the service-role Supabase handle.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from VidGroBackend.services.runtime_config_service import RuntimeConfigService
from shared.config import BackendConfig
from shared.supabase_client import SupabaseClient

logger = logging.getLogger("vidgro_backend")

# Table used for the admin connectivity probe; present in every VidGro deployment.
HEALTH_PROBE_TABLE = "profiles"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HealthService:
    """Aggregate health checks for the backend."""

    def __init__(
        self,
        cfg: BackendConfig,
        config_service: RuntimeConfigService,
        db: Optional[SupabaseClient],
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.config_service = config_service
        self.db = db
        self._monotonic = monotonic
        self._started = monotonic()

    def uptime_seconds(self) -> float:
        return round(self._monotonic() - self._started, 3)

    def basic_health(self) -> Dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": _utc_now_iso(),
            "environment": self.cfg.app_env,
            "version": self.cfg.app_version,
            "platform": self.cfg.platform,
            "cacheSize": self.config_service.cache_size(),
            "uptime": self.uptime_seconds(),
        }

    def test(self) -> Dict[str, Any]:
        return {
            "message": "VidGro backend is running",
            "timestamp": _utc_now_iso(),
            "platform": self.cfg.platform,
        }

    def test_env(self) -> Dict[str, Any]:
        env = str(self.cfg.app_env or "").strip().lower()
        return {
            "NODE_ENV": self.cfg.app_env,
            "isDevelopment": env in {"dev", "development"},
            "timestamp": _utc_now_iso(),
            "platform": self.cfg.platform,
        }

    def supabase_health(self) -> Dict[str, Any]:
        """Check Supabase connectivity and auth."""
        if self.db is None or not self.db.enabled():
            return {"ok": False, "skipped": True, "reason": "supabase_disabled"}

        try:
            # Zero-row count query validates connectivity and the service key
            count = self.db.probe(HEALTH_PROBE_TABLE)
            return {"ok": True, "host": self.db.host, "table": HEALTH_PROBE_TABLE, "rows": count}
        except Exception as e:
            logger.warning("health_supabase_failed error=%s", e)
            return {"ok": False, "error": str(e)}
