"""
Custom exception classes for the VidGro backend.

Each error carries the HTTP status the API layer translates it to, plus a short
human-readable message suitable for the `message` field of error responses.
"""

from __future__ import annotations


class VidGroError(Exception):
    """Base exception for all VidGro backend errors"""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.error


class ConfigUnavailableError(VidGroError):
    """Required Supabase credentials could not be resolved from any tier"""

    status_code = 503
    error = "Service temporarily unavailable"


class InvalidOverrideError(VidGroError):
    """Override request is missing required fields"""

    status_code = 400
    error = "invalid_override"


class StorageUnavailableError(VidGroError):
    """Admin storage client could not be constructed (missing credentials)"""

    status_code = 500
    error = "storage_unavailable"


class BackupUploadError(VidGroError):
    """Storage upload of a generated backup failed (non-fatal, inline fallback applies)"""

    status_code = 502
    error = "backup_upload_failed"


class DataAccessError(VidGroError):
    """Database/API access failures (Supabase PostgREST or Storage)"""

    status_code = 502
    error = "data_access_error"
