"""Shared helper functions used by the harvest workflow."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from .harvest_config import (
    ENV_PROXY_DISABLE,
    ENV_PROXY_ENDPOINT,
    ENV_PROXY_URL,
    ENV_PROXY_USER,
    ENV_PROXY_CREDENTIALS,
)


def as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if not normalized:
        return default
    return normalized not in {"0", "false", "off", "no"}


def safe_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    try:
        cleaned = value.strip()
        if not cleaned:
            return default
        return int(cleaned)
    except ValueError:
        return default


def safe_float(value: Optional[str], default: Optional[float] = None) -> Optional[float]:
    if value is None:
        return default
    try:
        cleaned = value.strip()
        if not cleaned:
            return default
        return float(cleaned)
    except ValueError:
        return default


def env_int(name: str, default: int) -> int:
    parsed = safe_int(os.getenv(name), default)
    return default if parsed is None else parsed


def env_float(name: str, default: float) -> float:
    parsed = safe_float(os.getenv(name), default)
    return default if parsed is None else parsed


def env_bool(name: str, default: bool = False) -> bool:
    return as_bool(os.getenv(name), default)


def proxy_configured() -> bool:
    """Return True when any proxy endpoint variable is set."""

    return bool(os.getenv(ENV_PROXY_URL) or os.getenv(ENV_PROXY_ENDPOINT))


def collect_environment_warnings() -> List[Dict[str, Any]]:
    """Describe environment gaps that degrade a run without making it fatal."""

    warnings: List[Dict[str, Any]] = []
    if env_bool(ENV_PROXY_DISABLE):
        warnings.append({
            "code": "proxy_disabled",
            "message": "Proxy disabled; requests use direct egress",
            "remedy": f"Unset {ENV_PROXY_DISABLE} to route requests through the proxy.",
        })
    elif not proxy_configured():
        warnings.append({
            "code": "proxy_missing",
            "message": "No proxy endpoint configured; requests use direct egress",
            "remedy": f"Set {ENV_PROXY_URL} or {ENV_PROXY_ENDPOINT}.",
        })
    elif not (os.getenv(ENV_PROXY_USER) or os.getenv(ENV_PROXY_CREDENTIALS) or "@" in (os.getenv(ENV_PROXY_URL) or "")):
        warnings.append({
            "code": "proxy_credentials_missing",
            "message": "Proxy endpoint set without credentials",
            "remedy": f"Set {ENV_PROXY_USER}/{ENV_PROXY_CREDENTIALS} if the proxy requires auth.",
        })
    try:
        import lxml  # noqa: F401
    except ImportError:
        warnings.append({
            "code": "lxml_missing",
            "message": "lxml is not installed; markup parsing is unavailable",
            "remedy": "pip install lxml",
        })
    return warnings


def sanity_check() -> None:
    assert as_bool("yes") and not as_bool("off") and as_bool(None, True)
    assert safe_int("12") == 12 and safe_int("x", 3) == 3
    assert safe_float(" 1.5 ") == 1.5 and safe_float("", 0.0) == 0.0


sanity_check()

__all__ = [
    "as_bool",
    "safe_int",
    "safe_float",
    "env_int",
    "env_float",
    "env_bool",
    "proxy_configured",
    "collect_environment_warnings",
    "sanity_check",
]
