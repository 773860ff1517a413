"""
Application context (dependency injection container) for VidGroBackend.

This centralizes initialization so routes can depend on a context object instead
of importing module-level singletons. The runtime config cache and override
store live on the single `RuntimeConfigService` held here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from VidGroBackend.logging_setup import setup_logging
from VidGroBackend.otel import setup_otel
from VidGroBackend.sentry_init import setup_sentry
from VidGroBackend.services.auth_service import AuthService
from VidGroBackend.services.backup_service import BackupService
from VidGroBackend.services.health_service import HealthService
from VidGroBackend.services.runtime_config_service import RuntimeConfigService
from shared.config import BackendConfig, load_backend_config, runtime_environ
from shared.supabase_client import create_client_from_config, create_storage_client_from_config


@dataclass(frozen=True)
class AppContext:
    logger: logging.Logger
    cfg: BackendConfig
    config_service: RuntimeConfigService
    backup_service: BackupService
    auth_service: AuthService
    health_service: HealthService


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    setup_logging()
    logger = logging.getLogger("vidgro_backend")
    setup_sentry(service_name="vidgro-backend")
    setup_otel()

    cfg = load_backend_config()
    db = create_client_from_config(cfg)
    storage = create_storage_client_from_config(cfg)

    config_service = RuntimeConfigService(
        environ=runtime_environ(),
        ttl_ms=int(cfg.config_cache_ttl_seconds) * 1000,
        allow_insecure_fallback=cfg.allow_insecure_config_fallback,
    )
    backup_service = BackupService(
        db=db,
        storage=storage,
        bucket=cfg.backup_bucket,
        candidate_tables=cfg.backup_candidate_tables,
        page_size=cfg.backup_page_size,
        max_rows_per_table=cfg.backup_max_rows_per_table,
        deadline_seconds=cfg.backup_deadline_seconds,
        signed_url_ttl_seconds=cfg.backup_signed_url_ttl_seconds,
    )
    auth_service = AuthService(cfg)
    health_service = HealthService(cfg, config_service, db)

    return AppContext(
        logger=logger,
        cfg=cfg,
        config_service=config_service,
        backup_service=backup_service,
        auth_service=auth_service,
        health_service=health_service,
    )
