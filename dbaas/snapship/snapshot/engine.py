"""
SQLite snapshot engine for snapship.

The SnapshotEngine copies a live SQLite database into a standalone file
using SQLite's online backup API. The copy proceeds in fixed-size page
batches; after every batch the step status is classified and a transient
busy/locked source is waited out with an injectable delay.

Step statuses:
    MORE  - batch copied, pages remain (SQLITE_OK)
    BUSY  - source temporarily locked (SQLITE_BUSY / SQLITE_LOCKED)
    DONE  - every page copied (SQLITE_DONE)
    FATAL - anything else

Invariants:
    - A produced file is a consistent copy of the source at some instant
      between call start and call completion
    - Busy waits are unbounded; the engine never returns a partial copy
    - A failed destination file is indeterminate and must be removed by
      the caller

How to change safely:
    - Keep the status classification in sync with SQLite result codes
    - Test with a source locked by a concurrent writer before changing the
      retry loop
"""

from __future__ import annotations

import hashlib
import logging
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import SnapshotError

logger = logging.getLogger(__name__)

SQLITE_OK = 0
SQLITE_BUSY = 5
SQLITE_LOCKED = 6
SQLITE_DONE = 101

DEFAULT_BATCH_PAGES = 1024
DEFAULT_BUSY_DELAY_SECONDS = 0.05


class CopyStatus(Enum):
    """Outcome of one page-copy step."""

    MORE = "more"
    BUSY = "busy"
    DONE = "done"
    FATAL = "fatal"


def classify_step(rc: int) -> CopyStatus:
    """Map a SQLite backup step result code to a CopyStatus."""
    primary = rc & 0xFF  # extended codes keep the primary code in the low byte
    if rc == SQLITE_OK:
        return CopyStatus.MORE
    if primary in (SQLITE_BUSY, SQLITE_LOCKED):
        return CopyStatus.BUSY
    if rc == SQLITE_DONE:
        return CopyStatus.DONE
    return CopyStatus.FATAL


@dataclass
class Artifact:
    """A standalone snapshot file.

    Attributes:
        path: Location of the file
        size_bytes: File size in bytes
        created_at: Creation timestamp (Unix ms)
        checksum: SHA-256 of the file contents
    """

    path: Path
    size_bytes: int
    created_at: int
    checksum: str


@dataclass
class SnapshotResult:
    """Result of a snapshot operation.

    Attributes:
        success: Whether the snapshot completed
        artifact: Produced artifact (success only)
        steps: Number of backup steps observed
        busy_retries: Number of steps the source reported busy
        duration_ms: Total duration
        error: Error if failed
    """

    success: bool
    artifact: Artifact | None
    steps: int
    busy_retries: int
    duration_ms: int
    error: SnapshotError | None = None


class _StepTracker:
    """Per-call bookkeeping for the backup progress hook."""

    def __init__(self, engine: SnapshotEngine) -> None:
        self.engine = engine
        self.steps = 0
        self.busy_retries = 0
        self.last_status: CopyStatus | None = None
        self.last_rc: int | None = None

    def __call__(self, status: int, remaining: int, total: int) -> None:
        self.steps += 1
        self.last_rc = status
        self.last_status = classify_step(status)

        if self.last_status is CopyStatus.BUSY:
            self.busy_retries += 1
            self.engine.logger.debug(
                f"Source busy (rc={status}), retrying step in {self.engine.busy_delay}s"
            )
            self.engine.delay(self.engine.busy_delay)
        elif self.last_status is CopyStatus.MORE:
            self.engine.logger.debug(f"Copied {total - remaining}/{total} pages")


class SnapshotEngine:
    """Copies a live SQLite database into a standalone file.

    Attributes:
        batch_pages: Pages copied per step
        busy_delay: Seconds to wait before retrying a busy step
        verify_integrity: Run PRAGMA integrity_check on the finished copy

    Example:
        >>> engine = SnapshotEngine(batch_pages=1024)
        >>> result = engine.snapshot_to_file("app.db", "app_backup.sqlite")
        >>> result.success
        True
    """

    def __init__(
        self,
        batch_pages: int = DEFAULT_BATCH_PAGES,
        busy_delay: float = DEFAULT_BUSY_DELAY_SECONDS,
        verify_integrity: bool = True,
        delay: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            batch_pages: Pages copied per backup step
            busy_delay: Seconds to wait before retrying a busy step
            verify_integrity: Check the finished copy with PRAGMA integrity_check
            delay: Sleep strategy used for busy waits
            logger: Logger for progress and diagnostics
        """
        if batch_pages <= 0:
            raise ValueError("batch_pages must be > 0")
        self.batch_pages = batch_pages
        self.busy_delay = busy_delay
        self.verify_integrity = verify_integrity
        self.delay = delay
        self.logger = logger or logging.getLogger(__name__)

    def snapshot_to_file(self, source: Any, destination: str | Path) -> SnapshotResult:
        """Copy the source database into a new file.

        Args:
            source: Open sqlite3.Connection (or compatible object exposing
                ``backup``), or a path to a database opened read-only
            destination: Path of the file to create

        Returns:
            SnapshotResult indicating success/failure
        """
        start_time = time.time()
        destination = Path(destination)
        tracker = _StepTracker(self)

        self.logger.info(f"Performing binary backup to file: {destination}")

        try:
            artifact = self._run(source, destination, tracker)
        except SnapshotError as e:
            self.logger.debug(f"Snapshot to {destination} failed: {e.reason}")
            return SnapshotResult(
                success=False,
                artifact=None,
                steps=tracker.steps,
                busy_retries=tracker.busy_retries,
                duration_ms=int((time.time() - start_time) * 1000),
                error=e,
            )

        duration_ms = int((time.time() - start_time) * 1000)
        self.logger.info(
            f"Binary backup completed successfully to: {destination}",
            extra={
                "size_bytes": artifact.size_bytes,
                "checksum": artifact.checksum,
                "steps": tracker.steps,
                "busy_retries": tracker.busy_retries,
                "duration_ms": duration_ms,
            },
        )
        return SnapshotResult(
            success=True,
            artifact=artifact,
            steps=tracker.steps,
            busy_retries=tracker.busy_retries,
            duration_ms=duration_ms,
        )

    def _run(self, source: Any, destination: Path, tracker: _StepTracker) -> Artifact:
        owns_source = isinstance(source, (str, Path))
        source_conn = self._open_source(source) if owns_source else source

        try:
            dest_conn = self._open_destination(destination)
            try:
                self._copy(source_conn, dest_conn, destination, tracker)
                if self.verify_integrity:
                    self._verify(dest_conn, destination)
            finally:
                dest_conn.close()
        finally:
            if owns_source:
                source_conn.close()

        try:
            return Artifact(
                path=destination,
                size_bytes=destination.stat().st_size,
                created_at=int(time.time() * 1000),
                checksum=compute_checksum(destination),
            )
        except OSError as e:
            raise SnapshotError(f"cannot read finished copy: {e}", path=str(destination))

    def _open_source(self, path: str | Path) -> sqlite3.Connection:
        path = Path(path)
        if not path.exists():
            raise SnapshotError("source database does not exist", path=str(path))
        try:
            # timeout=0: a locked source surfaces as a BUSY step
            return sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True, timeout=0)
        except sqlite3.Error as e:
            raise SnapshotError(f"cannot open source database: {e}", path=str(path))

    def _open_destination(self, destination: Path) -> sqlite3.Connection:
        if not destination.parent.is_dir():
            raise SnapshotError(
                f"destination directory does not exist: {destination.parent}",
                path=str(destination),
            )
        try:
            return sqlite3.connect(str(destination))
        except sqlite3.Error as e:
            raise SnapshotError(f"failed to open destination DB: {e}", path=str(destination))

    def _copy(
        self,
        source_conn: Any,
        dest_conn: sqlite3.Connection,
        destination: Path,
        tracker: _StepTracker,
    ) -> None:
        # sleep=0: busy waits go through the tracker's injectable delay instead
        try:
            source_conn.backup(dest_conn, pages=self.batch_pages, progress=tracker, sleep=0)
        except sqlite3.Error as e:
            raise SnapshotError(f"sqlite backup failed: {e}", path=str(destination))

        if tracker.last_status is CopyStatus.FATAL:
            raise SnapshotError(
                f"sqlite backup step failed with rc={tracker.last_rc}", path=str(destination)
            )

    def _verify(self, dest_conn: sqlite3.Connection, destination: Path) -> None:
        try:
            result = dest_conn.execute("PRAGMA integrity_check").fetchone()[0]
        except sqlite3.Error as e:
            raise SnapshotError(f"integrity check could not run: {e}", path=str(destination))
        if result != "ok":
            raise SnapshotError(f"integrity check failed: {result}", path=str(destination))


def compute_checksum(file_path: str | Path) -> str:
    """Compute SHA-256 checksum of file."""
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return f"sha256:{sha256.hexdigest()}"
