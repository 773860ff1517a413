"""
Best-effort error reporting for the VidGro backend.

Backup generation and storage calls keep going when an optional step fails
(a schema RPC, a bucket lookup, an upload with an inline fallback). Those
failures go through `swallow_exception` so they still show up in the logs and
in `backend_swallowed_exceptions_total`.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("vidgro.exceptions")

# Attribute names a LogRecord already owns; `extra` may not reuse them.
_RESERVED_RECORD_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _record_extra(context: str, exc_type_name: str, extra: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"context": context, "exception_type": exc_type_name}
    for key, value in (extra or {}).items():
        if key in _RESERVED_RECORD_KEYS or key in fields:
            key = f"extra_{key}"
        fields[key] = value
    return fields


def _count(context: str, exc_type_name: str) -> None:
    from VidGroBackend.metrics import swallowed_exceptions_total

    try:
        swallowed_exceptions_total.labels(context=context, exception_type=exc_type_name).inc()
    except Exception as e:
        logger.debug("swallowed_exception_metric_failed", extra={"context": context, "error": str(e)})


def swallow_exception(
    exc: Exception,
    *,
    context: str,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Record a failure the caller has decided to survive.

    `context` is a stable metric label such as "backup_upload" or
    "backup_rpc". Keys in `extra` that collide with LogRecord attributes
    ("filename", "module", ...) are logged with an `extra_` prefix.

    Example:
        try:
            result = db.rpc("get_table_indexes", {"table_name": table})
        except Exception as e:
            swallow_exception(e, context="backup_rpc", extra={"table": table})
    """
    exc_type_name = type(exc).__name__
    logger.exception("swallowed_exception", extra=_record_extra(context, exc_type_name, extra))
    _count(context, exc_type_name)
