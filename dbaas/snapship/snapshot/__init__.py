"""
Snapshot module for snapship.

This module produces standalone copies of a live SQLite database:
- Page-batched online backup tolerant of transient lock contention
- Integrity verification of the finished copy
- A sample store for demo data

Invariants:
    - Only complete, consistent copies are reported as successful
    - Busy sources are waited out, never skipped
"""

from .engine import Artifact, CopyStatus, SnapshotEngine, SnapshotResult, classify_step
from .sample import SampleStore

__all__ = [
    "Artifact",
    "CopyStatus",
    "SampleStore",
    "SnapshotEngine",
    "SnapshotResult",
    "classify_step",
]
