"""
Exception hierarchy for meshdoc.

Provides typed exceptions for configuration, registry and snapshot failures so
callers can tell a broken deployment setting from an unreachable registry.
Schema conversion never raises; malformed schemas degrade inside the converters.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class MeshDocError(Exception):
    """Base exception for all meshdoc errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Configuration Errors ====================


class ConfigurationError(MeshDocError):
    """Raised when generator settings are missing or invalid."""
    pass


# ==================== Registry Errors ====================


class RegistryError(MeshDocError):
    """Raised when the service registry cannot be queried or returns garbage.

    A registry failure aborts the whole generation; no partial document is
    produced.
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class AliasLookupError(RegistryError):
    """Raised when listing the auto-aliases of a service fails."""

    def __init__(self, message: str, service: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.service = service


# ==================== Snapshot Errors ====================


class SnapshotError(MeshDocError):
    """Raised when a registry snapshot file cannot be read or parsed."""
    pass
