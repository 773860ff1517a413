from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from VidGroBackend.app_context import AppContext, get_app_context
from VidGroBackend.metrics import metrics_payload

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    data, content_type = metrics_payload()
    return Response(content=data, media_type=content_type)


@router.get("/health")
def health(ctx: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    return ctx.health_service.basic_health()


@router.get("/health/supabase")
def health_supabase(ctx: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    return ctx.health_service.supabase_health()


@router.get("/test")
def test(ctx: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    return ctx.health_service.test()


@router.get("/test-env")
def test_env(ctx: AppContext = Depends(get_app_context)) -> Dict[str, Any]:
    return ctx.health_service.test_env()
