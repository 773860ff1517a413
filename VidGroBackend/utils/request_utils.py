"""
Request/response utilities.

HTTP request parsing helpers shared by the route modules.
"""
from typing import Optional

from fastapi import Request

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Cache-Control": "private, max-age=300",
}


def get_client_ip(request: Request) -> str:
    """
    Extract client IP from request headers or client object.

    Checks X-Forwarded-For header first, falls back to client.host.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address or "unknown"
    """
    xff = (request.headers.get("x-forwarded-for") or request.headers.get("X-Forwarded-For") or "").strip()
    if xff:
        first = xff.split(",", 1)[0].strip()
        return first or "unknown"
    return getattr(getattr(request, "client", None), "host", None) or "unknown"


def clean_optional_string(value: Optional[str]) -> Optional[str]:
    """
    Clean optional string value (strip whitespace, return None if empty).

    Args:
        value: Optional string to clean

    Returns:
        Cleaned string or None
    """
    if value is None:
        return None
    v = str(value).strip()
    return v or None


def get_requested_environment(request: Request, default: str = "production") -> str:
    """
    Environment a config request targets: `x-env` header, then `env` query, then default.
    """
    header = clean_optional_string(request.headers.get("x-env"))
    if header:
        return header
    query = clean_optional_string(request.query_params.get("env"))
    return query or default
