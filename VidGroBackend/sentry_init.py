from __future__ import annotations

import logging

from shared.config import load_backend_config
from shared.exceptions import ConfigUnavailableError, InvalidOverrideError


logger = logging.getLogger("vidgro_backend.sentry_init")

# Expected, caller-facing failures that are already answered with 4xx/503.
_IGNORED_EXCEPTIONS = (ConfigUnavailableError, InvalidOverrideError)


def setup_sentry(*, service_name: str = "vidgro-backend") -> None:
    """
    Optional Sentry error tracking hook.

    - No hard dependency: if sentry_sdk isn't installed, this is a no-op.
    - Enable with `SENTRY_DSN` environment variable.
    - Configure environment, release, and sampling via environment variables.
    """
    cfg = load_backend_config()
    dsn = str(cfg.sentry_dsn or "").strip()

    if not dsn:
        logger.info("sentry_disabled_no_dsn")
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.logging import LoggingIntegration
    except ImportError:
        logger.info("sentry_disabled_missing_package")
        return

    environment = str(cfg.sentry_environment or cfg.app_env or "development").strip()
    release = str(cfg.sentry_release or "").strip() or None
    traces_sample_rate = float(cfg.sentry_traces_sample_rate if cfg.sentry_traces_sample_rate is not None else 0.1)
    profiles_sample_rate = float(cfg.sentry_profiles_sample_rate if cfg.sentry_profiles_sample_rate is not None else 0.1)

    integrations = [
        FastApiIntegration(transaction_style="url"),
        LoggingIntegration(
            level=logging.INFO,  # Capture info and above as breadcrumbs
            event_level=logging.ERROR  # Send errors as events
        ),
    ]

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release,
            traces_sample_rate=traces_sample_rate,
            profiles_sample_rate=profiles_sample_rate,
            integrations=integrations,
            send_default_pii=False,
            attach_stacktrace=True,
            before_send=_before_send,
        )
        logger.info(
            "sentry_enabled",
            extra={
                "service_name": service_name,
                "environment": environment,
                "release": release or "unknown",
                "traces_sample_rate": traces_sample_rate,
            }
        )
    except Exception:
        logger.exception("sentry_setup_failed")


def _before_send(event, hint):
    """
    Drop expected client-facing errors and scrub Supabase keys from request bodies.
    """
    exc_info = (hint or {}).get("exc_info")
    if exc_info and isinstance(exc_info[1], _IGNORED_EXCEPTIONS):
        return None

    request = (event or {}).get("request") or {}
    data = request.get("data")
    if isinstance(data, dict):
        for key in list(data.keys()):
            if "KEY" in str(key).upper():
                data[key] = "[Filtered]"

    return event
