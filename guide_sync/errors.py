"""Error taxonomy for the guide sync layer.

Only `ResourceNotFound` is meant to reach a user-visible error state. The other
kinds are raised inside the layer and absorbed by the tiered fallback:

- NetworkFailure: timeout, transport error, non-2xx, undecodable or invalid body.
- Throttled: the remote service asked us to back off; becomes a Cooldown Marker.
- StorageWriteError: local persistence rejected a write; logged as a warning.
"""

from typing import Any, Dict, Optional


class GuideSyncError(Exception):
    """
    Base exception for the guide sync layer.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_404")
        details: Additional context for logging
        recoverable: Whether a fallback tier can absorb the error
    """

    default_code = "SYNC_000"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dict for logs and API error bodies."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ResourceNotFound(GuideSyncError):
    """The key exists in none of the tiers (network, local store, seed)."""

    default_code = "SYNC_404"

    def __init__(self, key: str, **kwargs):
        details = kwargs.pop("details", {})
        details["key"] = key
        super().__init__(
            message=f"Resource '{key}' is not available from any source",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.key = key


class NetworkFailure(GuideSyncError):
    """A remote fetch failed or returned something we refuse to accept."""

    default_code = "SYNC_NET"

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message=message, details=details, **kwargs)
        self.status_code = status_code


class Throttled(GuideSyncError):
    """The remote service signalled rate limiting (HTTP 429)."""

    default_code = "SYNC_429"

    def __init__(self, message: str = "Remote service rate-limited the request",
                 retry_after_seconds: Optional[float] = None, **kwargs):
        details = kwargs.pop("details", {})
        if retry_after_seconds is not None:
            details["retry_after_seconds"] = retry_after_seconds
        super().__init__(message=message, details=details, **kwargs)
        self.retry_after_seconds = retry_after_seconds


class StorageWriteError(GuideSyncError):
    """Local persistence rejected a write (quota exhausted, disk error)."""

    default_code = "SYNC_STORE"

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if key is not None:
            details["key"] = key
        super().__init__(message=message, details=details, **kwargs)
        self.key = key
