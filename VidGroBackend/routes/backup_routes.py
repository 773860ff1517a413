from __future__ import annotations

import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from VidGroBackend.app_context import AppContext, get_app_context
from VidGroBackend.models import BackupCreateRequest, BackupDeleteRequest
from VidGroBackend.services.backup_service import decode_inline_token
from VidGroBackend.utils.request_utils import clean_optional_string
from shared.supabase_client import SupabaseError

router = APIRouter()

_DISPOSITION_UNSAFE = re.compile(r'[^A-Za-z0-9._-]+')


def _download_name(filename: Optional[str]) -> str:
    name = _DISPOSITION_UNSAFE.sub("-", clean_optional_string(filename) or "").strip("-.")
    return name or "vidgro-backup.sql"


@router.post("/api/admin/database-backup")
def create_backup(
    request: Request,
    req: Optional[BackupCreateRequest] = None,
    ctx: AppContext = Depends(get_app_context),
) -> Dict[str, Any]:
    ctx.auth_service.require_admin(request)
    req = req or BackupCreateRequest()
    result = ctx.backup_service.generate_backup(
        req.backup_type,
        custom_name=req.custom_name,
        max_rows_per_table=req.max_rows_per_table,
    )
    return result.to_dict()


@router.get("/api/admin/database-backup/list")
def list_backups(request: Request, bucket: Optional[str] = None, ctx: AppContext = Depends(get_app_context)) -> Any:
    ctx.auth_service.require_admin(request)
    try:
        records = ctx.backup_service.list_backups(bucket)
    except SupabaseError as e:
        ctx.logger.warning("backup_list_failed", extra={"bucket": bucket, "error": str(e)})
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "backup_list_failed", "message": str(e)},
        )
    return {"success": True, "backups": [r.to_dict() for r in records]}


@router.post("/api/admin/database-backup/delete")
def delete_backup(
    request: Request,
    req: Optional[BackupDeleteRequest] = None,
    ctx: AppContext = Depends(get_app_context),
) -> Any:
    ctx.auth_service.require_admin(request)
    path = clean_optional_string(req.path if req else None)
    if not path:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "missing_path", "message": "Backup path is required"},
        )
    result = ctx.backup_service.delete_backup(path, bucket=req.bucket if req else None)
    if not result.success:
        return JSONResponse(status_code=500, content=result.to_dict())
    return result.to_dict()


@router.get("/backup")
def download_inline_backup(
    token: Optional[str] = None,
    filename: Optional[str] = None,
    ctx: AppContext = Depends(get_app_context),
) -> Response:
    """Serve a backup embedded in its own download link (used when storage upload was unavailable)."""
    if not clean_optional_string(token):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "missing_token", "message": "Backup token is required"},
        )
    try:
        sql = decode_inline_token(str(token))
    except ValueError as e:
        ctx.logger.warning("backup_token_invalid", extra={"error": str(e)})
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "invalid_token", "message": "Failed to decode backup token"},
        )
    name = _download_name(filename)
    return Response(
        content=sql.encode("utf-8"),
        media_type="application/sql",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )
