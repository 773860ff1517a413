"""
Database backup generation service.

Builds a restorable SQL dump of a fixed, operator-configured set of tables
through the service-role PostgREST client, uploads it to Supabase Storage when
possible, and always returns an inline base64 download link so a backup is
never lost because storage was unavailable.

Every per-table, per-RPC and per-page failure is swallowed and written into the
dump as a comment. Only unexpected assembly errors reach the caller.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import quote, urlencode

from VidGroBackend.metrics import backup_rows_exported_total, backups_generated_total
from VidGroBackend.sql_dump import (
    SchemaFragment,
    SectionStub,
    SqlDumpBuilder,
    TableData,
    insert_statement,
    truncation_notice,
)
from shared.config import DEFAULT_BACKUP_TABLES
from shared.exceptions import BackupUploadError, StorageUnavailableError
from shared.observability import swallow_exception
from shared.supabase_client import SupabaseClient, SupabaseError, SupabaseStorageClient

logger = logging.getLogger("vidgro_backend.backup")

SCHEMA_RPCS = (
    ("get_table_definition", "Table definition"),
    ("get_table_indexes", "Indexes"),
    ("get_table_triggers", "Triggers"),
    ("get_table_policies", "Policies"),
)
FUNCTIONS_RPC = "get_function_definitions"

BACKUP_TYPE_TABLES: Dict[str, Sequence[str]] = {
    "users": ("profiles", "admin_profiles"),
    "videos": ("videos", "video_deletions"),
    "config": ("runtime_config", "config_audit_log"),
    "analytics": ("admin_logs", "config_audit_log"),
}

LIST_LIMIT = 100

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def tables_for_backup_type(backup_type: str, candidates: Sequence[str]) -> List[str]:
    """Candidate tables a backup type covers; `full` and unknown types get all of them."""
    subset = BACKUP_TYPE_TABLES.get(str(backup_type or "").strip().lower())
    if not subset:
        return list(candidates)
    return [t for t in candidates if t in subset]


def encode_inline_token(sql: str) -> str:
    return base64.b64encode(sql.encode("utf-8")).decode("ascii")


def decode_inline_token(token: str) -> str:
    """
    Reverse of `encode_inline_token`.

    Tolerates a token whose `+` characters were turned into spaces by an
    unencoded query string, and missing `=` padding.

    Raises:
        ValueError: token is not valid base64 or not UTF-8 text
    """
    cleaned = str(token or "").strip().replace(" ", "+")
    if not cleaned:
        raise ValueError("empty backup token")
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"invalid backup token: {e}") from e


def inline_file_path(token: str, filename: str) -> str:
    return "/backup?" + urlencode({"token": token, "filename": filename}, quote_via=quote)


def format_size_kb(size_bytes: int) -> str:
    return f"{size_bytes / 1024:.2f} KB"


@dataclass(frozen=True)
class StorageLocation:
    bucket: str
    uploaded: bool = False
    path: Optional[str] = None
    public_url: Optional[str] = None
    signed_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket,
            "uploaded": self.uploaded,
            "publicUrl": self.public_url,
            "signedUrl": self.signed_url,
            "path": self.path,
        }


@dataclass(frozen=True)
class InlineLocation:
    token: str
    file_path: str


@dataclass
class BackupResult:
    success: bool
    filename: str
    backup_type: str
    timestamp: str
    size_bytes: int
    tables: List[str]
    storage: StorageLocation
    inline: InlineLocation
    degraded: bool = False
    sql: str = field(default="", repr=False)

    @property
    def size(self) -> str:
        return format_size_kb(self.size_bytes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "filename": self.filename,
            "filePath": self.inline.file_path,
            "storage": self.storage.to_dict(),
            "size": self.size,
            "sizeBytes": self.size_bytes,
            "timestamp": self.timestamp,
            "backupType": self.backup_type,
            "tables": list(self.tables),
            "degraded": self.degraded,
        }


@dataclass(frozen=True)
class BackupRecord:
    """One stored backup as reported by the storage listing."""

    id: str
    name: str
    size: Optional[int]
    created_at: Optional[str]
    updated_at: Optional[str]
    path: str
    bucket: str

    @classmethod
    def from_storage(cls, obj: Dict[str, Any], bucket: str) -> "BackupRecord":
        metadata = obj.get("metadata") or {}
        name = str(obj.get("name") or "")
        size = metadata.get("size") if isinstance(metadata, dict) else None
        return cls(
            id=str(obj.get("id")),
            name=name,
            size=int(size) if isinstance(size, (int, float)) else None,
            created_at=obj.get("created_at"),
            updated_at=obj.get("updated_at"),
            path=str(obj.get("path") or name),
            bucket=bucket,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "path": self.path,
            "bucket": self.bucket,
        }


@dataclass(frozen=True)
class DeleteResult:
    success: bool
    path: str
    bucket: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "path": self.path, "bucket": self.bucket, "message": self.message}


class _Deadline:
    def __init__(self, seconds: float, clock: Callable[[], float]):
        self._clock = clock
        self._seconds = float(seconds)
        self._expires_at = clock() + self._seconds

    @property
    def seconds(self) -> float:
        return self._seconds

    def expired(self) -> bool:
        return self._clock() >= self._expires_at


def _fragment_text(result: Any) -> str:
    """Flatten an introspection RPC result (text, row list or row) into SQL text."""
    if result is None:
        return ""
    if isinstance(result, str):
        return result.strip()
    if isinstance(result, dict):
        for key in ("definition", "sql", "ddl"):
            if isinstance(result.get(key), str):
                return result[key].strip()
        texts = [v for v in result.values() if isinstance(v, str)]
        return texts[0].strip() if len(texts) == 1 else ""
    if isinstance(result, list):
        parts = [_fragment_text(item) for item in result]
        return "\n".join(p for p in parts if p)
    return str(result).strip()


class BackupService:
    def __init__(
        self,
        *,
        db: Optional[SupabaseClient],
        storage: Optional[SupabaseStorageClient],
        bucket: str = "database-backups",
        candidate_tables: Sequence[str] = DEFAULT_BACKUP_TABLES,
        page_size: int = 1000,
        max_rows_per_table: int = 2000,
        deadline_seconds: float = 120.0,
        signed_url_ttl_seconds: int = 7 * 24 * 3600,
        monotonic: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.db = db
        self.storage = storage
        self.bucket = bucket
        self.candidate_tables = list(candidate_tables)
        self.page_size = max(1, int(page_size))
        self.max_rows_per_table = max(0, int(max_rows_per_table))
        self.deadline_seconds = float(deadline_seconds)
        self.signed_url_ttl_seconds = int(signed_url_ttl_seconds)
        self._monotonic = monotonic
        self._now = now

    def generate_backup(
        self,
        backup_type: str = "full",
        custom_name: Optional[str] = None,
        max_rows_per_table: Optional[int] = None,
    ) -> BackupResult:
        backup_type = str(backup_type or "full").strip().lower() or "full"
        cap = self.max_rows_per_table if max_rows_per_table is None else max(0, int(max_rows_per_table))
        created = self._now()
        timestamp = created.isoformat()
        filename = self._filename(backup_type, created, custom_name)
        deadline = _Deadline(self.deadline_seconds, self._monotonic)

        builder = SqlDumpBuilder(
            backup_type=backup_type,
            created_at=timestamp,
            source=self.db.host if self.db is not None else "unconfigured",
        )

        if self.db is None:
            builder.note(
                "Administrative database client not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY); "
                "schema and data sections are empty",
                degraded=True,
            )
            logger.warning("backup_db_unavailable", extra={"backup_type": backup_type})
        else:
            builder.tables = self._present_tables(builder, tables_for_backup_type(backup_type, self.candidate_tables))
            for table in builder.tables:
                if self._deadline_hit(builder, deadline, f"schema export stopped before {table}"):
                    break
                self._export_schema(builder, table)
            for table in builder.tables:
                if self._deadline_hit(builder, deadline, f"data export stopped before {table}"):
                    break
                builder.add_table_data(self._export_rows(builder, table, cap, deadline))
            if not self._deadline_hit(builder, deadline, "function definitions skipped"):
                builder.add_functions(self._rpc_section(FUNCTIONS_RPC, {}, "functions", "Function definitions"))

        sql = builder.render()
        size_bytes = len(sql.encode("utf-8"))
        token = encode_inline_token(sql)
        inline = InlineLocation(token=token, file_path=inline_file_path(token, filename))
        storage = self._upload(filename, sql)

        rows = builder.stats()["rows"]
        backup_rows_exported_total.inc(rows)
        backups_generated_total.labels(uploaded=str(storage.uploaded).lower()).inc()
        logger.info(
            "backup_generated",
            extra={
                "backup_type": backup_type,
                "backup_filename": filename,
                "bucket": storage.bucket,
                "uploaded": storage.uploaded,
                "size_bytes": size_bytes,
                "rows": rows,
                "degraded": builder.degraded,
            },
        )
        return BackupResult(
            success=True,
            filename=filename,
            backup_type=backup_type,
            timestamp=timestamp,
            size_bytes=size_bytes,
            tables=list(builder.tables),
            storage=storage,
            inline=inline,
            degraded=builder.degraded,
            sql=sql,
        )

    def list_backups(self, bucket: Optional[str] = None) -> List[BackupRecord]:
        """
        Newest-first listing of stored backups (at most 100).

        Raises:
            StorageUnavailableError: storage client not configured
            SupabaseError: listing request failed
        """
        storage = self._require_storage()
        bucket = (bucket or "").strip() or self.bucket
        objects = storage.list_objects(bucket, limit=LIST_LIMIT, sort_column="created_at", sort_order="desc")
        # Folder placeholders come back without an id.
        return [BackupRecord.from_storage(obj, bucket) for obj in objects if obj.get("id")]

    def delete_backup(self, path: str, bucket: Optional[str] = None) -> DeleteResult:
        """
        Remove one stored backup. Never raises for a missing object or a storage
        error; the outcome is reported in the result instead.

        Raises:
            StorageUnavailableError: storage client not configured
        """
        storage = self._require_storage()
        bucket = (bucket or "").strip() or self.bucket
        path = str(path or "").strip().lstrip("/")
        try:
            removed = storage.remove(bucket, [path])
        except SupabaseError as e:
            logger.warning("backup_delete_failed", extra={"bucket": bucket, "path": path, "error": str(e)})
            return DeleteResult(False, path, bucket, f"Failed to delete backup: {e}")
        if not removed:
            logger.info("backup_delete_not_found", extra={"bucket": bucket, "path": path})
            return DeleteResult(False, path, bucket, f"Backup not found: {path}")
        logger.info("backup_deleted", extra={"bucket": bucket, "path": path})
        return DeleteResult(True, path, bucket, "Backup deleted successfully")

    def _require_storage(self) -> SupabaseStorageClient:
        if self.storage is None:
            raise StorageUnavailableError(
                "Storage is not configured; set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to manage backups"
            )
        return self.storage

    def _filename(self, backup_type: str, created: datetime, custom_name: Optional[str]) -> str:
        stamp = created.strftime("%Y-%m-%dT%H-%M-%S")
        name = _UNSAFE_NAME_CHARS.sub("-", str(custom_name or "").strip()).strip("-.")
        if not name:
            return f"vidgro-{backup_type}-backup-{stamp}.sql"
        if not name.lower().endswith(".sql"):
            name = f"{name}-{stamp}.sql"
        return name

    def _deadline_hit(self, builder: SqlDumpBuilder, deadline: _Deadline, what: str) -> bool:
        if not deadline.expired():
            return False
        builder.note(f"Backup deadline of {deadline.seconds:g}s reached; {what}", degraded=True)
        logger.warning("backup_deadline_reached", extra={"backup_type": builder.backup_type, "step": what})
        return True

    def _present_tables(self, builder: SqlDumpBuilder, candidates: Sequence[str]) -> List[str]:
        assert self.db is not None
        present: List[str] = []
        for table in candidates:
            try:
                self.db.probe(table)
            except Exception as e:
                logger.info("backup_table_absent", extra={"table": table, "error": str(e)})
                builder.note(f"Table {table} skipped: not reachable ({e})")
                continue
            present.append(table)
        return present

    def _rpc_section(self, function: str, params: Dict[str, Any], table: str, kind: str):
        assert self.db is not None
        try:
            result = self.db.rpc(function, params)
        except Exception as e:
            swallow_exception(e, context="backup_rpc", extra={"rpc": function, "table": table})
            return SectionStub(table=table, kind=kind, reason=str(e) or type(e).__name__)
        text = _fragment_text(result)
        if not text:
            return SectionStub(table=table, kind=kind, reason="no definition returned", failed=False)
        return SchemaFragment(table=table, kind=kind, sql=text)

    def _export_schema(self, builder: SqlDumpBuilder, table: str) -> None:
        for function, kind in SCHEMA_RPCS:
            builder.add_schema(self._rpc_section(function, {"table_name": table}, table, kind))

    def _row_order(self, table: str) -> Optional[str]:
        """
        Stable paging order for `table`: `id` when the table has one, else its
        first column. None when the table is empty.
        """
        assert self.db is not None
        sample = self.db.select(table, limit=1)
        if not sample:
            return None
        columns = list(sample[0].keys())
        key = "id" if "id" in columns else columns[0]
        return f"{key}.asc"

    def _page_failed(self, builder: SqlDumpBuilder, data: TableData, offset: int, e: Exception) -> None:
        swallow_exception(e, context="backup_page_fetch", extra={"table": data.table, "offset": offset})
        data.notes.append(f"Failed to fetch rows for {data.table} at offset {offset}: {e}")
        builder.degraded = True

    def _export_rows(self, builder: SqlDumpBuilder, table: str, cap: int, deadline: _Deadline) -> TableData:
        assert self.db is not None
        data = TableData(table=table)
        try:
            order_by = self._row_order(table)
        except Exception as e:
            self._page_failed(builder, data, 0, e)
            return data
        if order_by is None:
            return data

        columns: Optional[List[str]] = None
        offset = 0
        while True:
            if deadline.expired():
                data.notes.append(f"Backup deadline reached; export of {table} stopped after {len(data.statements)} rows")
                builder.degraded = True
                break
            remaining = cap - len(data.statements)
            limit = min(self.page_size, remaining)
            # One extra row on the last page separates "exactly at the cap" from "truncated".
            fetch = limit + 1 if limit == remaining else limit
            try:
                rows = self.db.select(table, limit=fetch, offset=offset, order_by=order_by)
            except Exception as e:
                self._page_failed(builder, data, offset, e)
                break
            truncated = len(rows) > limit
            rows = rows[:limit]
            if rows and columns is None:
                columns = list(rows[0].keys())
            data.statements.extend(insert_statement(table, columns, row) for row in rows)
            offset += len(rows)
            if truncated:
                data.notes.append(truncation_notice(table, cap))
                break
            if len(rows) < fetch:
                break
        return data

    def _bucket_is_public(self, bucket: str) -> Optional[bool]:
        """
        Make sure the backup bucket exists. Returns its public flag when known,
        None when the storage backend could not list buckets.
        """
        assert self.storage is not None
        try:
            buckets = self.storage.list_buckets()
        except Exception as e:
            swallow_exception(e, context="backup_bucket_list", extra={"bucket": bucket})
            return None
        for b in buckets:
            if b.get("id") == bucket or b.get("name") == bucket:
                return bool(b.get("public"))
        try:
            self.storage.create_bucket(bucket, public=False)
            logger.info("backup_bucket_created", extra={"bucket": bucket})
        except Exception as e:
            swallow_exception(e, context="backup_bucket_create", extra={"bucket": bucket})
        return False

    def _put_object(self, bucket: str, filename: str, sql: str) -> None:
        assert self.storage is not None
        try:
            self.storage.upload(bucket, filename, sql.encode("utf-8"), content_type="application/sql", upsert=True)
        except Exception as e:
            raise BackupUploadError(f"Upload of {filename} to {bucket} failed: {e}") from e

    def _upload(self, filename: str, sql: str) -> StorageLocation:
        bucket = self.bucket
        if self.storage is None:
            logger.info("backup_storage_disabled", extra={"backup_filename": filename})
            return StorageLocation(bucket=bucket)

        is_public = self._bucket_is_public(bucket)
        try:
            self._put_object(bucket, filename, sql)
        except BackupUploadError as e:
            swallow_exception(e, context="backup_upload", extra={"bucket": bucket, "backup_filename": filename})
            return StorageLocation(bucket=bucket)

        if is_public:
            return StorageLocation(
                bucket=bucket, uploaded=True, path=filename, public_url=self.storage.public_url(bucket, filename)
            )
        signed_url: Optional[str] = None
        try:
            signed_url = self.storage.create_signed_url(bucket, filename, self.signed_url_ttl_seconds)
        except Exception as e:
            swallow_exception(e, context="backup_signed_url", extra={"bucket": bucket, "backup_filename": filename})
        return StorageLocation(bucket=bucket, uploaded=True, path=filename, signed_url=signed_url)
