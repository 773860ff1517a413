"""
Configuration utilities.

Small parsers used when reading live environment values. Typed process
configuration lives in shared/config.py.
"""
from typing import Mapping, Optional


def parse_truthy(value: Optional[str]) -> bool:
    """
    Parse truthy string value.

    Args:
        value: String value to parse ("1", "true", "yes", etc.)

    Returns:
        True if value is truthy, False otherwise
    """
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_str(environ: Mapping[str, str], *names: str) -> str:
    """First non-empty value among `names` in `environ`, stripped ("" if none)."""
    for name in names:
        value = str(environ.get(name) or "").strip()
        if value:
            return value
    return ""


def env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = str(environ.get(name) or "").strip()
    if not raw:
        return default
    return parse_truthy(raw)


def env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = str(environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default
