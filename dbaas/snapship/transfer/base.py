"""
Base protocol and types for the transfer layer.

This module defines the TransferPrimitive protocol that upload backends
implement, along with the request/status types exchanged with the
TransportClient.

Invariants:
    - perform() reports failures as a TransferStatus, never by raising
    - One perform() call is one attempt; retry policy lives in the client
    - Requests never carry credentials; the primitive gets them from its
      EndpointConfig

How to change safely:
    - Protocol changes require updating all implementations and test fakes
    - Add new request fields with defaults
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import BinaryIO, Protocol, runtime_checkable

ResponseCallback = Callable[[str], None]
ProgressCallback = Callable[[int, int], None]


class ProgressAborted(Exception):
    """A progress callback failed; the current attempt is abandoned."""

    pass


@dataclass(frozen=True)
class TransferRequest:
    """One file to upload.

    Attributes:
        url: Display URL of the target (no credentials)
        remote_dir: Cleaned remote directory ("" for the login directory)
        filename: Remote file name
        total_bytes: Size of the local file
    """

    url: str
    remote_dir: str
    filename: str
    total_bytes: int


@dataclass(frozen=True)
class TransferStatus:
    """Outcome of one transfer attempt.

    Attributes:
        ok: Whether the upload completed
        detail: Error detail for failures, final server reply for successes
    """

    ok: bool
    detail: str | None = None


@runtime_checkable
class TransferPrimitive(Protocol):
    """Performs a single upload attempt."""

    def perform(
        self,
        request: TransferRequest,
        source: BinaryIO,
        on_response: ResponseCallback,
        on_progress: ProgressCallback | None = None,
    ) -> TransferStatus:
        """Upload source to the request target.

        Args:
            request: What to upload and where
            source: Open binary file positioned at the start
            on_response: Receives server response text
            on_progress: Receives (bytes_so_far, total_bytes)

        Returns:
            TransferStatus for this attempt
        """
        ...
