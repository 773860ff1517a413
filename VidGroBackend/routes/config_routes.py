from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from VidGroBackend.app_context import AppContext, get_app_context
from VidGroBackend.models import EnvSyncRequest
from VidGroBackend.utils.request_utils import (
    SECURITY_HEADERS,
    clean_optional_string,
    get_client_ip,
    get_requested_environment,
)

router = APIRouter()


@router.get("/client-runtime-config")
@router.get("/api/client-runtime-config")
def client_runtime_config(request: Request, ctx: AppContext = Depends(get_app_context)) -> JSONResponse:
    """
    Public runtime config for the mobile app.

    Target environment comes from the `x-env` header or `env` query (default
    production). A cache hit also reports when the document was cached.
    """
    environment = get_requested_environment(request)
    lookup = ctx.config_service.get_or_resolve(environment)

    ctx.logger.info(
        "client_config_served",
        extra={
            "environment": environment,
            "cached": lookup.cached,
            "client_ip": get_client_ip(request),
            "app_version": clean_optional_string(request.headers.get("x-app-version")) or "unknown",
        },
    )

    body: Dict[str, Any] = {"data": lookup.document.to_client(), "cached": lookup.cached}
    if lookup.cached:
        body["timestamp"] = lookup.cached_at_ms
    body["environment"] = environment
    return JSONResponse(content=body, headers=dict(SECURITY_HEADERS))


@router.post("/admin/env-sync")
@router.post("/api/admin/env-sync")
def env_sync(
    request: Request,
    req: Optional[EnvSyncRequest] = None,
    ctx: AppContext = Depends(get_app_context),
) -> Dict[str, Any]:
    ctx.auth_service.require_admin(request)
    req = req or EnvSyncRequest()
    overrides = ctx.config_service.apply_override(
        req.resolved_url(),
        req.resolved_anon_key(),
        admob=req.admob_overrides(),
    )
    return {
        "success": True,
        "message": "Environment variables synced successfully",
        "overrides": overrides,
    }


@router.post("/admin/clear-config-cache")
@router.post("/api/admin/clear-config-cache")
def clear_config_cache(request: Request, ctx: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    ctx.auth_service.require_admin(request)
    cleared = ctx.config_service.clear_cache()
    return {"success": True, "message": "Config cache cleared", "cleared": cleared}
