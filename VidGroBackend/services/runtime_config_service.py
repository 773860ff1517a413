"""
Runtime configuration distribution service.

Resolves, caches and serves the per-environment config document fetched by the
mobile app, and accepts in-memory operator overrides for the Supabase
credentials. One instance is created per process (see app_context.py); all
shared state lives on that instance behind a single lock.

Resolution order for each Supabase field (first non-empty wins):
1. override store
2. MOBILE_* env var, then the generic env var
3. literal placeholder fallback (only when insecure fallback is allowed)
"""
from __future__ import annotations

import logging
import os
import threading
import time
from collections import ChainMap
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, NamedTuple, Optional

from VidGroBackend.metrics import config_cache_lookups_total, config_overrides_applied_total
from VidGroBackend.models import (
    AdmobSection,
    AppSection,
    ConfigDocument,
    ConfigMetadata,
    FeatureFlags,
    SecuritySection,
    SupabaseSection,
)
from VidGroBackend.utils.config_utils import env_bool, env_int, env_str
from shared.exceptions import ConfigUnavailableError, InvalidOverrideError

logger = logging.getLogger("vidgro_backend.runtime_config")

CACHE_KEY_PREFIX = "public-config-"
DEFAULT_CACHE_TTL_MS = 5 * 60 * 1000

# Placeholder credentials served when nothing else is configured and
# ALLOW_INSECURE_CONFIG_FALLBACK is on. Never put real keys here.
FALLBACK_SUPABASE_URL = "https://placeholder-project.supabase.co"
FALLBACK_SUPABASE_ANON_KEY = "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9.placeholder"

ADMOB_DEFAULTS = {
    "ADMOB_APP_ID": "ca-app-pub-test",
    "ADMOB_BANNER_ID": "ca-app-pub-test-banner",
    "ADMOB_INTERSTITIAL_ID": "ca-app-pub-test-interstitial",
    "ADMOB_REWARDED_ID": "ca-app-pub-test-rewarded",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class OverrideStore:
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    # AdMob env var name -> value; consulted before the process environment.
    admob: Dict[str, str] = field(default_factory=dict)

    def copy(self) -> "OverrideStore":
        return OverrideStore(self.supabase_url, self.supabase_anon_key, dict(self.admob))

    def snapshot(self) -> Dict[str, Optional[str]]:
        return {"supabaseUrl": self.supabase_url, "supabaseAnonKey": self.supabase_anon_key}


@dataclass(frozen=True)
class CacheEntry:
    document: ConfigDocument
    cached_at_ms: int


class ConfigLookup(NamedTuple):
    document: ConfigDocument
    cached: bool
    cached_at_ms: int


class RuntimeConfigService:
    """Process-wide config resolver with a TTL cache and override store."""

    def __init__(
        self,
        *,
        environ: Optional[Mapping[str, str]] = None,
        ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        allow_insecure_fallback: bool = True,
        clock: Callable[[], int] = _now_ms,
    ):
        # Read live so values changed after startup are picked up on the next miss.
        self._environ: Mapping[str, str] = os.environ if environ is None else environ
        self._ttl_ms = int(ttl_ms)
        self._allow_insecure_fallback = bool(allow_insecure_fallback)
        self._clock = clock
        self._lock = threading.Lock()
        self._overrides = OverrideStore()
        self._cache: Dict[str, CacheEntry] = {}

    @staticmethod
    def cache_key(environment: str) -> str:
        return f"{CACHE_KEY_PREFIX}{environment}"

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def resolve_config(self, environment: str) -> ConfigDocument:
        """
        Build a fresh document for `environment` without touching the cache.

        Raises:
            ConfigUnavailableError: Supabase URL or anon key unresolved in every tier
        """
        with self._lock:
            overrides = self._overrides.copy()
        return self._build_document(environment, overrides)

    def get_or_resolve(self, environment: str) -> ConfigLookup:
        """
        Cache read-through used by the client-facing endpoint.

        The lock is held across resolution so an override applied concurrently
        can never be followed by a stale pre-override document being cached.
        """
        key = self.cache_key(environment)
        with self._lock:
            now = self._clock()
            entry = self._cache.get(key)
            if entry is not None and (now - entry.cached_at_ms) < self._ttl_ms:
                config_cache_lookups_total.labels(result="hit").inc()
                return ConfigLookup(entry.document, True, entry.cached_at_ms)

            config_cache_lookups_total.labels(result="miss").inc()
            document = self._build_document(environment, self._overrides)
            cached_at = self._clock()
            self._cache[key] = CacheEntry(document=document, cached_at_ms=cached_at)
            return ConfigLookup(document, False, cached_at)

    def apply_override(
        self,
        url: Optional[str],
        anon_key: Optional[str],
        admob: Optional[Mapping[str, Optional[str]]] = None,
    ) -> Dict[str, Optional[str]]:
        """
        Replace the Supabase override pair and drop every cached public config.

        Supplied AdMob IDs (keys from ADMOB_DEFAULTS) are merged into the
        override store's AdMob overlay. Validation happens before any mutation.

        Raises:
            InvalidOverrideError: url or anon key missing
        """
        new_url = str(url or "").strip()
        new_key = str(anon_key or "").strip()
        if not new_url or not new_key:
            raise InvalidOverrideError("Missing SUPABASE URL or ANON KEY")

        admob_updates = {
            name: str(value).strip()
            for name, value in (admob or {}).items()
            if name in ADMOB_DEFAULTS and value is not None and str(value).strip()
        }

        with self._lock:
            self._overrides.supabase_url = new_url
            self._overrides.supabase_anon_key = new_key
            self._overrides.admob.update(admob_updates)
            invalidated = self._invalidate_public_configs_locked()
            snapshot = self._overrides.snapshot()

        config_overrides_applied_total.inc()
        logger.info(
            "config_override_applied",
            extra={"invalidated": invalidated, "admob_keys": sorted(admob_updates)},
        )
        return snapshot

    def clear_cache(self) -> int:
        with self._lock:
            cleared = len(self._cache)
            self._cache.clear()
        logger.info("config_cache_cleared", extra={"cleared": cleared})
        return cleared

    def cache_size(self) -> int:
        with self._lock:
            return len(self._cache)

    def overrides(self) -> Dict[str, Optional[str]]:
        with self._lock:
            return self._overrides.snapshot()

    def _invalidate_public_configs_locked(self) -> int:
        keys = [k for k in self._cache if k.startswith(CACHE_KEY_PREFIX)]
        for k in keys:
            del self._cache[k]
        return len(keys)

    def _build_document(self, environment: str, overrides: OverrideStore) -> ConfigDocument:
        env = self._environ

        url = (overrides.supabase_url or "").strip() or env_str(env, "MOBILE_SUPABASE_URL", "SUPABASE_URL")
        anon_key = (overrides.supabase_anon_key or "").strip() or env_str(
            env, "MOBILE_SUPABASE_ANON_KEY", "SUPABASE_ANON_KEY"
        )

        if (not url or not anon_key) and self._allow_insecure_fallback:
            logger.warning(
                "config_insecure_fallback_used",
                extra={"environment": environment, "missing_url": not url, "missing_key": not anon_key},
            )
            url = url or FALLBACK_SUPABASE_URL
            anon_key = anon_key or FALLBACK_SUPABASE_ANON_KEY

        if not url or not anon_key:
            logger.error("config_unavailable", extra={"environment": environment})
            raise ConfigUnavailableError(
                "Application configuration not properly set up. Please contact administrator."
            )

        admob_env = ChainMap(overrides.admob, env)
        node_env = env_str(env, "NODE_ENV").lower()

        return ConfigDocument(
            supabase=SupabaseSection(url=url, anon_key=anon_key),
            admob=AdmobSection(
                app_id=env_str(admob_env, "ADMOB_APP_ID") or ADMOB_DEFAULTS["ADMOB_APP_ID"],
                banner_id=env_str(admob_env, "ADMOB_BANNER_ID") or ADMOB_DEFAULTS["ADMOB_BANNER_ID"],
                interstitial_id=env_str(admob_env, "ADMOB_INTERSTITIAL_ID") or ADMOB_DEFAULTS["ADMOB_INTERSTITIAL_ID"],
                rewarded_id=env_str(admob_env, "ADMOB_REWARDED_ID") or ADMOB_DEFAULTS["ADMOB_REWARDED_ID"],
            ),
            features=FeatureFlags(
                coins_enabled=env_bool(env, "FEATURE_COINS_ENABLED", True),
                ads_enabled=env_bool(env, "FEATURE_ADS_ENABLED", True),
                vip_enabled=env_bool(env, "FEATURE_VIP_ENABLED", True),
                referrals_enabled=env_bool(env, "FEATURE_REFERRALS_ENABLED", True),
                analytics_enabled=env_bool(env, "FEATURE_ANALYTICS_ENABLED", True),
            ),
            app=AppSection(
                min_version=env_str(env, "APP_MIN_VERSION") or "1.0.0",
                force_update=env_bool(env, "APP_FORCE_UPDATE", False),
                maintenance_mode=env_bool(env, "APP_MAINTENANCE_MODE", False),
                api_version=env_str(env, "APP_API_VERSION") or "v1",
            ),
            security=SecuritySection(
                allow_emulators=env_bool(env, "SECURITY_ALLOW_EMULATORS", node_env == "development"),
                allow_rooted=env_bool(env, "SECURITY_ALLOW_ROOTED", False),
                require_signature_validation=env_bool(
                    env, "SECURITY_REQUIRE_SIGNATURE_VALIDATION", node_env == "production"
                ),
                ad_block_detection=env_bool(env, "SECURITY_AD_BLOCK_DETECTION", True),
            ),
            metadata=ConfigMetadata(
                config_version=env_str(env, "CONFIG_VERSION") or "1.0.0",
                last_updated=datetime.now(timezone.utc).isoformat(),
                ttl=env_int(env, "CONFIG_CLIENT_TTL_SECONDS", 3600),
            ),
        )
