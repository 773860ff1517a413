"""
Authentication and authorization service.

Admin endpoints are protected by a shared API key (ADMIN_API_KEY).
"""
import logging

from fastapi import HTTPException, Request

from shared.config import BackendConfig

logger = logging.getLogger("vidgro_backend")


class AuthService:
    """Centralized admin key validation."""

    def __init__(self, cfg: BackendConfig):
        self.cfg = cfg

    def get_admin_key(self) -> str:
        """Get admin API key from configuration."""
        return str(self.cfg.admin_api_key or "").strip()

    def require_admin(self, request: Request) -> None:
        """
        Verify admin API key from request headers.

        Args:
            request: FastAPI request object

        Raises:
            HTTPException: 401 if unauthorized, 500 if key missing in prod
        """
        key = self.get_admin_key()
        if not key:
            # In dev, allow missing key for easier local iteration
            if not self.cfg.is_production:
                return
            logger.error("admin_api_key_missing", extra={"path": request.url.path})
            raise HTTPException(status_code=500, detail="admin_api_key_missing")

        provided = (
            request.headers.get("x-api-key") or
            request.headers.get("X-Api-Key") or
            request.headers.get("x-admin-key") or
            request.headers.get("X-Admin-Key") or
            ""
        ).strip()

        if provided != key:
            logger.warning("admin_unauthorized", extra={"path": request.url.path})
            raise HTTPException(status_code=401, detail="admin_unauthorized")
