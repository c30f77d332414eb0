"""Exceptions surfaced by the liveness scanner."""
from __future__ import annotations


class ScanError(RuntimeError):
    """Base class for scan-start failures reported to the caller."""


class PermissionDeniedError(ScanError):
    """Camera access was refused or the device could not be opened."""


class InvalidConfigurationError(ScanError, ValueError):
    """Scan configuration cannot produce a session (e.g. non-positive duration)."""


__all__ = ["ScanError", "PermissionDeniedError", "InvalidConfigurationError"]
