"""Error taxonomy for harvesting.

Per-target errors are carried as data inside a ``FetchOutcome``; only
``ConfigurationError`` (and a failed listing fetch) aborts a run.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConfigurationError(ValueError):
    """Invalid startup configuration (proxy endpoint, keyword, limits)."""


class HarvestError(Exception):
    """Base class for errors attached to a single target."""

    kind: str = "internal"

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.url = url

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.url:
            payload["url"] = self.url
        return payload

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class ProxyConnectError(HarvestError):
    kind = "proxy_connect"


class FetchTimeoutError(HarvestError):
    kind = "timeout"


class HttpStatusError(HarvestError):
    kind = "http_status"

    def __init__(self, code: int, *, url: Optional[str] = None) -> None:
        super().__init__(f"HTTP status {code}", url=url)
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["code"] = self.code
        return payload


class ExtractionError(HarvestError):
    """The page was fetched but an expected field is missing from the markup."""

    kind = "extraction"

    def __init__(self, missing_field: str, *, url: Optional[str] = None) -> None:
        super().__init__(f"missing field {missing_field!r}", url=url)
        self.missing_field = missing_field

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["missing_field"] = self.missing_field
        return payload


class MalformedUrlError(HarvestError):
    kind = "malformed_url"


class InternalTaskError(HarvestError):
    """Unexpected exception raised inside a fetch task."""

    kind = "internal"


ERROR_KINDS = (
    ProxyConnectError.kind,
    FetchTimeoutError.kind,
    HttpStatusError.kind,
    ExtractionError.kind,
    MalformedUrlError.kind,
    InternalTaskError.kind,
)

__all__ = [
    "ConfigurationError",
    "HarvestError",
    "ProxyConnectError",
    "FetchTimeoutError",
    "HttpStatusError",
    "ExtractionError",
    "MalformedUrlError",
    "InternalTaskError",
    "ERROR_KINDS",
]
