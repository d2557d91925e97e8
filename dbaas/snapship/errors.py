"""
Error types for snapship.

This module defines all exception types used by the pipeline:
- SnapshipError: Base exception
- ConfigurationError: Bad endpoint, credentials or settings (before any I/O)
- SnapshotError: Source unreadable, destination uncreatable, fatal copy fault
- TransportError: Network, authentication or protocol failure
- LocalResourceError: Missing local artifact or unreadable file handle

Components do not raise these across their public boundary. They return
result records that carry one of them, and the orchestrator is the only
place that turns them into a pass/fail outcome.

Invariants:
    - All errors inherit from SnapshipError
    - Errors include context for debugging
    - Error messages never contain credentials
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SnapshipError(Exception):
    """Base exception for all snapship errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SNAPSHIP_ERROR"
        self.details = details or {}


class ConfigurationError(SnapshipError):
    """Configuration is invalid.

    Raised when:
    - Endpoint host or port is missing or out of range
    - Credentials are unresolved
    - The transfer primitive cannot be initialised
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class SnapshotError(SnapshipError):
    """Snapshot could not be produced.

    Raised when:
    - Source database cannot be opened
    - Destination file cannot be created
    - The page copy reports a non-recoverable status
    - The finished copy fails its integrity check
    """

    def __init__(
        self,
        reason: str,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Snapshot failed: {reason}",
            code="SNAPSHOT_ERROR",
            details={"reason": reason, "path": path},
        )
        self.reason = reason
        self.path = path


class TransportError(SnapshipError):
    """Upload failed after exhausting retries.

    Attributes:
        url: Target URL (never contains credentials)
        attempts: Number of attempts made
        last_error: Detail reported by the final attempt
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        attempts: int = 0,
        last_error: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="TRANSPORT_ERROR",
            details={"url": url, "attempts": attempts, "last_error": last_error},
        )
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class LocalResourceError(SnapshipError):
    """Local file is missing or unreadable."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="LOCAL_RESOURCE_ERROR",
            details={"path": path},
        )
        self.path = path
