"""
Transfer module for snapship.

This module ships artifacts to a remote FTPS endpoint:
- TransportClient: retry loop, backoff, URL construction, logging
- FtpsTransfer: one explicit-FTPS upload attempt
- TransferPrimitive: protocol for alternative backends and test fakes

Invariants:
    - Both control and data channels are encrypted
    - Transient failures are retried, local and configuration faults are not
"""

from .base import TransferPrimitive, TransferRequest, TransferStatus
from .client import TransferAttempt, TransportClient, UploadResult, backoff_wait, clean_remote_dir
from .ftps import FtpsTransfer

__all__ = [
    "FtpsTransfer",
    "TransferAttempt",
    "TransferPrimitive",
    "TransferRequest",
    "TransferStatus",
    "TransportClient",
    "UploadResult",
    "backoff_wait",
    "clean_remote_dir",
]
