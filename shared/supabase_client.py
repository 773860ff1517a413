"""
Supabase REST clients for the VidGro backend.

Two thin `requests`-based clients sharing one retry/session policy:
- `SupabaseClient` talks to PostgREST (`/rest/v1`) for table probes, paged
  selects and RPC calls used by the backup generator.
- `SupabaseStorageClient` talks to Storage (`/storage/v1`) for bucket
  management, uploads, URL resolution, listing and deletion of backups.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from shared.config import BackendConfig
from shared.exceptions import DataAccessError

logger = logging.getLogger(__name__)


@dataclass
class SupabaseConfig:
    """Configuration for Supabase clients."""
    url: str
    key: str
    timeout: int = 30
    max_retries: int = 3
    enabled: bool = True


class SupabaseError(DataAccessError):
    """Base exception for Supabase errors."""
    pass


class SupabaseRPC300Error(SupabaseError):
    """Raised when RPC returns HTTP 300 (silent failure)."""
    pass


def _build_session(config: SupabaseConfig) -> requests.Session:
    session = requests.Session()

    # Configure retries for transient errors
    retry_strategy = Retry(
        total=config.max_retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "HEAD", "POST", "PUT", "DELETE"],
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    # Disable trust_env for local/Docker URLs
    try:
        host = (urlparse(config.url).hostname or "").lower()
        if host in {"127.0.0.1", "localhost", "::1"}:
            session.trust_env = False
    except Exception:
        pass
    return session


def _error_detail(e: requests.exceptions.RequestException) -> str:
    resp = getattr(e, "response", None)
    if resp is None:
        return str(e)
    body = ""
    try:
        body = (resp.text or "")[:300]
    except Exception:
        body = ""
    return f"HTTP {resp.status_code}: {body or e}"


class SupabaseClient:
    """
    Supabase PostgREST client used with the service-role key.

    Handles:
    - Authentication headers
    - Error handling and retries
    - RPC 300 detection
    - Connection pooling
    - Timeout configuration
    """

    def __init__(self, config: SupabaseConfig):
        """
        Initialize Supabase client.

        Args:
            config: SupabaseConfig with URL, key, and options
        """
        self.config = config
        self.base_url = f"{config.url}/rest/v1"
        self.session = _build_session(config)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """
        Generate request headers with authentication.

        Args:
            extra: Additional headers to include

        Returns:
            Dict of headers
        """
        headers = {
            "apikey": self.config.key,
            "Authorization": f"Bearer {self.config.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        if extra:
            headers.update(extra)
        return headers

    @property
    def host(self) -> str:
        return urlparse(self.config.url).hostname or self.config.url

    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        SELECT query with filters.

        Args:
            table: Table name
            filters: Dict of column=value filters (uses eq operator)
            columns: Columns to select (default: all)
            limit: Max rows to return
            offset: Rows to skip (for pagination)
            order_by: Order by clause (e.g., "created_at.desc")

        Returns:
            List of rows

        Raises:
            SupabaseError: On API error
        """
        url = f"{self.base_url}/{table}"
        params: Dict[str, Any] = {"select": columns}

        if filters:
            for key, value in filters.items():
                params[key] = f"eq.{value}"

        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset

        if order_by:
            params["order"] = order_by

        try:
            response = self.session.get(
                url,
                headers=self._headers(),
                params=params,
                timeout=self.config.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Supabase SELECT failed: {e}")
            raise SupabaseError(f"SELECT {table} failed: {_error_detail(e)}") from e
        return data if isinstance(data, list) else []

    def probe(self, table: str) -> int:
        """
        Zero-row count query used to check that a table exists and is readable.

        Unlike a best-effort count this raises, so callers can tell an empty
        table (returns 0) from a missing one.

        Returns:
            Row count reported by PostgREST (0 when unknown)

        Raises:
            SupabaseError: If the table does not respond successfully
        """
        url = f"{self.base_url}/{table}"
        headers = self._headers({"Prefer": "count=exact"})

        try:
            response = self.session.head(
                url,
                headers=headers,
                params={"select": "*", "limit": 0},
                timeout=self.config.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise SupabaseError(f"probe {table} failed: {_error_detail(e)}") from e

        # Format: "*/42" (limit=0) or "0-9/42" where 42 is the total count
        content_range = response.headers.get("Content-Range", "")
        total = content_range.split("/")[-1] if content_range else ""
        try:
            return int(total)
        except ValueError:
            return 0

    def rpc(self, function: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Call RPC function.

        Args:
            function: Function name
            params: Function parameters

        Returns:
            Function result

        Raises:
            SupabaseRPC300Error: If RPC returns HTTP 300
            SupabaseError: On other API errors
        """
        url = f"{self.base_url}/rpc/{function}"

        try:
            response = self.session.post(
                url,
                headers=self._headers(),
                json=params or {},
                timeout=self.config.timeout
            )

            # PostgREST answers 300 when an overloaded function is ambiguous
            if response.status_code == 300:
                error_msg = f"RPC returned HTTP 300 for function '{function}' - indicates silent failure"
                logger.error(error_msg)
                raise SupabaseRPC300Error(error_msg)

            response.raise_for_status()
            if not response.content:
                return None
            return response.json()
        except SupabaseRPC300Error:
            raise
        except requests.exceptions.RequestException as e:
            logger.warning(f"Supabase RPC failed: {e}")
            raise SupabaseError(f"RPC '{function}' failed: {_error_detail(e)}") from e
        except ValueError as e:
            raise SupabaseError(f"RPC '{function}' returned invalid JSON: {e}") from e

    def enabled(self) -> bool:
        """Check if client is enabled."""
        return self.config.enabled


class SupabaseStorageClient:
    """
    Supabase Storage client.

    Mirrors the subset of the storage API the backup generator needs. Every
    method raises `SupabaseError` on failure; callers decide whether the
    failure is fatal.
    """

    def __init__(self, config: SupabaseConfig):
        self.config = config
        self.base_url = f"{config.url}/storage/v1"
        self.session = _build_session(config)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.config.key,
            "Authorization": f"Bearer {self.config.key}",
        }
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _object_path(path: str) -> str:
        return quote(str(path).lstrip("/"), safe="/")

    def _request(self, method: str, url: str, *, what: str, **kwargs: Any) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.config.timeout, **kwargs)
            response.raise_for_status()
            return response
        except requests.exceptions.RequestException as e:
            logger.warning(f"Supabase storage {what} failed: {e}")
            raise SupabaseError(f"storage {what} failed: {_error_detail(e)}") from e

    def list_buckets(self) -> List[Dict[str, Any]]:
        resp = self._request("GET", f"{self.base_url}/bucket", what="list_buckets", headers=self._headers())
        data = resp.json()
        return data if isinstance(data, list) else []

    def create_bucket(self, bucket: str, *, public: bool = False) -> Dict[str, Any]:
        resp = self._request(
            "POST",
            f"{self.base_url}/bucket",
            what="create_bucket",
            headers=self._headers({"Content-Type": "application/json"}),
            json={"id": bucket, "name": bucket, "public": bool(public)},
        )
        return resp.json() if resp.content else {}

    def upload(self, bucket: str, path: str, data: bytes, *, content_type: str = "application/sql", upsert: bool = True) -> Dict[str, Any]:
        resp = self._request(
            "POST",
            f"{self.base_url}/object/{bucket}/{self._object_path(path)}",
            what="upload",
            headers=self._headers({"Content-Type": content_type, "x-upsert": "true" if upsert else "false"}),
            data=data,
        )
        return resp.json() if resp.content else {}

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/object/public/{bucket}/{self._object_path(path)}"

    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        resp = self._request(
            "POST",
            f"{self.base_url}/object/sign/{bucket}/{self._object_path(path)}",
            what="create_signed_url",
            headers=self._headers({"Content-Type": "application/json"}),
            json={"expiresIn": int(expires_in)},
        )
        data = resp.json() if resp.content else {}
        signed = str((data or {}).get("signedURL") or (data or {}).get("signedUrl") or "")
        if not signed:
            raise SupabaseError(f"storage create_signed_url returned no URL for {bucket}/{path}")
        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/{signed.lstrip('/')}"

    def list_objects(
        self,
        bucket: str,
        *,
        prefix: str = "",
        limit: int = 100,
        offset: int = 0,
        sort_column: str = "created_at",
        sort_order: str = "desc",
    ) -> List[Dict[str, Any]]:
        resp = self._request(
            "POST",
            f"{self.base_url}/object/list/{bucket}",
            what="list_objects",
            headers=self._headers({"Content-Type": "application/json"}),
            json={
                "prefix": prefix,
                "limit": int(limit),
                "offset": int(offset),
                "sortBy": {"column": sort_column, "order": sort_order},
            },
        )
        data = resp.json()
        return data if isinstance(data, list) else []

    def remove(self, bucket: str, paths: List[str]) -> List[Dict[str, Any]]:
        """Delete objects; returns the objects storage actually removed."""
        resp = self._request(
            "DELETE",
            f"{self.base_url}/object/{bucket}",
            what="remove",
            headers=self._headers({"Content-Type": "application/json"}),
            json={"prefixes": [str(p).lstrip("/") for p in paths]},
        )
        data = resp.json() if resp.content else []
        return data if isinstance(data, list) else []


def admin_config_from_backend(cfg: BackendConfig) -> SupabaseConfig:
    url = cfg.admin_supabase_url
    key = cfg.admin_supabase_key
    return SupabaseConfig(
        url=url,
        key=key,
        timeout=int(cfg.supabase_timeout),
        max_retries=int(cfg.supabase_max_retries),
        enabled=bool(url and key),
    )


def create_client_from_config(cfg: BackendConfig) -> Optional[SupabaseClient]:
    """
    Create the service-role PostgREST client, or None when SUPABASE_URL /
    SUPABASE_SERVICE_ROLE_KEY are not configured.
    """
    sb_cfg = admin_config_from_backend(cfg)
    if not sb_cfg.enabled:
        logger.info("supabase_admin_client_disabled")
        return None
    return SupabaseClient(sb_cfg)


def create_storage_client_from_config(cfg: BackendConfig) -> Optional[SupabaseStorageClient]:
    sb_cfg = admin_config_from_backend(cfg)
    if not sb_cfg.enabled:
        logger.info("supabase_storage_client_disabled")
        return None
    return SupabaseStorageClient(sb_cfg)
