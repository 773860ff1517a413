"""
Centralized configuration for the VidGro backend.

Goal:
- One typed source of truth for config.
- Keep the mobile-specific and generic env var names working side by side (aliases).
"""

from __future__ import annotations

import logging
import os
from collections import ChainMap
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_REPO_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_BACKUP_TABLES = (
    "profiles",
    "videos",
    "video_deletions",
    "admin_profiles",
    "admin_logs",
    "runtime_config",
    "config_audit_log",
)


def _clean_url(value: Optional[str]) -> Optional[str]:
    s = (value or "").strip().rstrip("/")
    return s or None


def _env_file_candidates(service_dir: str) -> list[Path]:
    # Order matters: service-local .env first, then repo-root .env (if any).
    return [
        _REPO_ROOT / service_dir / ".env",
        _REPO_ROOT / ".env",
    ]


class BackendConfig(BaseSettings):
    """Configuration for the VidGroBackend API service."""

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    # Environment
    app_env: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "NODE_ENV"))
    app_host: str = Field(default="0.0.0.0", validation_alias=AliasChoices("APP_HOST"))
    app_port: int = Field(default=3001, validation_alias=AliasChoices("APP_PORT", "PORT"))
    app_version: str = Field(default="2.1.0", validation_alias=AliasChoices("APP_VERSION"))
    platform: str = Field(default="fastapi", validation_alias=AliasChoices("PLATFORM"))

    # Auth
    admin_api_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("ADMIN_API_KEY"))
    cors_allow_origins: str = Field(default="*", validation_alias=AliasChoices("CORS_ALLOW_ORIGINS"))

    # Supabase (mobile-facing credentials + admin handle)
    supabase_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("SUPABASE_URL"))
    mobile_supabase_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("MOBILE_SUPABASE_URL"))
    supabase_anon_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("SUPABASE_ANON_KEY"))
    mobile_supabase_anon_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("MOBILE_SUPABASE_ANON_KEY"))
    supabase_service_role_key: Optional[str] = Field(default=None, validation_alias=AliasChoices("SUPABASE_SERVICE_ROLE_KEY"))
    supabase_timeout: int = Field(default=30, validation_alias=AliasChoices("SUPABASE_TIMEOUT"))
    supabase_max_retries: int = Field(default=3, validation_alias=AliasChoices("SUPABASE_MAX_RETRIES"))

    # Runtime config distribution
    allow_insecure_config_fallback: bool = Field(default=True, validation_alias=AliasChoices("ALLOW_INSECURE_CONFIG_FALLBACK"))
    config_cache_ttl_seconds: int = Field(default=300, validation_alias=AliasChoices("CONFIG_CACHE_TTL_SECONDS"))

    # Database backups
    backup_bucket: str = Field(default="database-backups", validation_alias=AliasChoices("BACKUP_BUCKET", "SUPABASE_BACKUP_BUCKET"))
    backup_tables: Optional[str] = Field(default=None, validation_alias=AliasChoices("BACKUP_TABLES"))
    backup_page_size: int = Field(default=1000, validation_alias=AliasChoices("BACKUP_PAGE_SIZE"))
    backup_max_rows_per_table: int = Field(default=2000, validation_alias=AliasChoices("BACKUP_MAX_ROWS_PER_TABLE", "MAX_ROWS_PER_TABLE"))
    backup_deadline_seconds: float = Field(default=120.0, validation_alias=AliasChoices("BACKUP_DEADLINE_SECONDS"))
    backup_signed_url_ttl_seconds: int = Field(default=7 * 24 * 3600, validation_alias=AliasChoices("BACKUP_SIGNED_URL_TTL_SECONDS"))

    # Observability
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL"))
    log_dir: Optional[str] = Field(default=None, validation_alias=AliasChoices("LOG_DIR"))
    log_file: Optional[str] = Field(default=None, validation_alias=AliasChoices("LOG_FILE"))
    log_json: bool = Field(default=False, validation_alias=AliasChoices("LOG_JSON"))
    log_to_console: bool = Field(default=True, validation_alias=AliasChoices("LOG_TO_CONSOLE"))
    log_to_file: bool = Field(default=True, validation_alias=AliasChoices("LOG_TO_FILE"))
    log_max_bytes: int = Field(default=5_000_000, validation_alias=AliasChoices("LOG_MAX_BYTES"))
    log_backup_count: int = Field(default=5, validation_alias=AliasChoices("LOG_BACKUP_COUNT"))
    otel_enabled: bool = Field(default=False, validation_alias=AliasChoices("OTEL_ENABLED"))
    otel_exporter_otlp_endpoint: str = Field(default="http://otel-collector:4318", validation_alias=AliasChoices("OTEL_EXPORTER_OTLP_ENDPOINT"))
    otel_service_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("OTEL_SERVICE_NAME"))

    sentry_dsn: Optional[str] = Field(default=None, validation_alias=AliasChoices("SENTRY_DSN"))
    sentry_environment: Optional[str] = Field(default=None, validation_alias=AliasChoices("SENTRY_ENVIRONMENT"))
    sentry_release: Optional[str] = Field(default=None, validation_alias=AliasChoices("SENTRY_RELEASE"))
    sentry_traces_sample_rate: Optional[float] = Field(default=None, validation_alias=AliasChoices("SENTRY_TRACES_SAMPLE_RATE"))
    sentry_profiles_sample_rate: Optional[float] = Field(default=None, validation_alias=AliasChoices("SENTRY_PROFILES_SAMPLE_RATE"))

    @model_validator(mode="after")
    def _validate_backup_limits(self) -> "BackendConfig":
        if self.backup_page_size <= 0:
            raise ValueError("BACKUP_PAGE_SIZE must be positive")
        if self.backup_max_rows_per_table < 0:
            raise ValueError("BACKUP_MAX_ROWS_PER_TABLE must not be negative")
        return self

    @property
    def admin_supabase_url(self) -> str:
        """URL used for the service-role (admin) handle: generic name first."""
        return _clean_url(self.supabase_url) or _clean_url(self.mobile_supabase_url) or ""

    @property
    def admin_supabase_key(self) -> str:
        return (self.supabase_service_role_key or "").strip()

    @property
    def backup_candidate_tables(self) -> List[str]:
        raw = (self.backup_tables or "").strip()
        if not raw:
            return list(DEFAULT_BACKUP_TABLES)
        tables = [t.strip() for t in raw.split(",") if t.strip()]
        return tables or list(DEFAULT_BACKUP_TABLES)

    @property
    def is_production(self) -> bool:
        return str(self.app_env or "").strip().lower() in {"prod", "production"}


def _existing_env_files(env_file: Optional[Path]) -> List[Path]:
    candidates = [env_file] if env_file else _env_file_candidates("VidGroBackend")
    return [p for p in candidates if p and p.exists()]


@lru_cache(maxsize=4)
def _cached_backend_config(env_file_str: Optional[str]) -> BackendConfig:
    existing = _existing_env_files(Path(env_file_str) if env_file_str else None)
    return BackendConfig(_env_file=existing or None, _env_file_encoding="utf-8")  # type: ignore[arg-type]


def load_backend_config(*, env_file: Optional[Path] = None) -> BackendConfig:
    return _cached_backend_config(str(env_file) if env_file else None)


def load_env_file_values(*, env_file: Optional[Path] = None) -> Dict[str, str]:
    """
    Raw values from the .env files `load_backend_config()` reads.

    Later files override earlier ones, as in pydantic-settings. Keys declared
    without a value are dropped.
    """
    values: Dict[str, str] = {}
    for path in _existing_env_files(env_file):
        for key, value in dotenv_values(path, encoding="utf-8").items():
            if value is not None:
                values[key] = value
    return values


def runtime_environ(*, env_file: Optional[Path] = None) -> Mapping[str, str]:
    """
    Live process environment layered over the .env values.

    Used for settings read by name at request time (client config tiers,
    AdMob ids, feature flags). Process variables win over .env entries.
    """
    return ChainMap(os.environ, load_env_file_values(env_file=env_file))


def validate_environment_integrity(cfg: BackendConfig) -> None:
    """
    Validate that environment configuration is internally consistent.

    Raises RuntimeError if dangerous misconfigurations detected.
    """
    if cfg.is_production:
        admin_key = str(cfg.admin_api_key or "").strip()
        if not admin_key or admin_key == "changeme" or len(admin_key) < 32:
            raise RuntimeError(
                "FATAL CONFIGURATION ERROR:\n"
                "APP_ENV=production but ADMIN_API_KEY is missing or weak\n"
                "Production must have a strong admin API key.\n"
                "Fix: Set ADMIN_API_KEY to a secure random string"
            )

        if cfg.allow_insecure_config_fallback:
            logging.warning(
                "INSECURE CONFIG FALLBACK ENABLED: "
                "ALLOW_INSECURE_CONFIG_FALLBACK=true in production. "
                "Clients will receive placeholder Supabase credentials if none are configured."
            )
