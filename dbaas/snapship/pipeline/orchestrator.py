"""
Backup pipeline orchestrator for snapship.

The BackupPipeline runs one backup pass:
1. Validate configuration
2. Reserve a timestamped artifact path
3. Snapshot the source database into the artifact
4. Upload the artifact
5. Remove the artifact

States:
    IDLE -> SNAPSHOTTING -> UPLOADING -> CLEANED_SUCCESS | CLEANED_FAILED

Artifact format:
    <output_dir>/<prefix>_backup_<YYYYMMDD_HHMMSS>.sqlite

Invariants:
    - At most one artifact exists per run
    - The artifact is removed exactly once on every exit path, including
      KeyboardInterrupt
    - run() never raises; every failure is logged once at ERROR and
      reported as False

How to change safely:
    - Keep this the only place that converts component errors to a boolean
    - Add stages between SNAPSHOTTING and UPLOADING inside the artifact scope
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from ..config import PipelineConfig
from ..errors import SnapshipError, SnapshotError
from ..snapshot import SnapshotEngine, SnapshotResult
from ..transfer import FtpsTransfer, TransportClient, UploadResult
from ..transfer.client import TransferFactory

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".sqlite"


class PipelineState(Enum):
    """Lifecycle state of a pipeline run."""

    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    UPLOADING = "uploading"
    CLEANED_SUCCESS = "cleaned_success"
    CLEANED_FAILED = "cleaned_failed"


@dataclass
class RunReport:
    """Result of a pipeline run.

    Attributes:
        success: Whether the artifact was uploaded
        state: Final state
        artifact_path: Artifact used by the run (already removed)
        snapshot: Snapshot stage result
        upload: Upload stage result
        duration_ms: Total run duration
        error: Error if failed
    """

    success: bool
    state: PipelineState
    artifact_path: Path | None
    snapshot: SnapshotResult | None
    upload: UploadResult | None
    duration_ms: int
    error: str | None = None


def artifact_name(prefix: str, now: datetime) -> str:
    """File name for an artifact created at ``now``."""
    return f"{prefix}_backup_{now:%Y%m%d_%H%M%S}{ARTIFACT_SUFFIX}"


def reserve_artifact_path(output_dir: str | Path, prefix: str, now: datetime) -> Path:
    """Create an empty artifact file with a unique timestamped name.

    Concurrent runs that start in the same second get ``_1``, ``_2``...
    suffixes instead of sharing a file.

    Raises:
        SnapshotError: If the file cannot be created
    """
    output_dir = Path(output_dir)
    base = artifact_name(prefix, now)
    candidate = output_dir / base
    counter = 0
    while True:
        try:
            with open(candidate, "xb"):
                return candidate
        except FileExistsError:
            counter += 1
            candidate = output_dir / base.replace(ARTIFACT_SUFFIX, f"_{counter}{ARTIFACT_SUFFIX}")
        except OSError as e:
            raise SnapshotError(f"cannot create artifact file: {e}", path=str(candidate))


@contextmanager
def owned_artifact(path: Path, log: logging.Logger) -> Iterator[Path]:
    """Remove ``path`` when the block exits, however it exits."""
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
            log.info(f"Temporary file removed: {path}")
        except OSError as e:
            log.warning(f"Failed to remove temporary file {path}: {e}")


class BackupPipeline:
    """Sequences snapshot and upload for one database.

    Attributes:
        config: Pipeline configuration
        state: Current (or final) state of the latest run
        last_report: Report of the latest run

    Example:
        >>> pipeline = BackupPipeline(PipelineConfig.from_env())
        >>> ok = pipeline.run()
    """

    def __init__(
        self,
        config: PipelineConfig,
        engine: SnapshotEngine | None = None,
        client: TransportClient | None = None,
        clock: Callable[[], datetime] = datetime.now,
        transfer_factory: TransferFactory = FtpsTransfer,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Pipeline configuration
            engine: Snapshot engine (built from config when omitted)
            client: Transport client (built from config when omitted)
            clock: Source of the artifact timestamp
            transfer_factory: Creates the transfer primitive for a built client
            sleep: Backoff sleep for a built client
            logger: Logger shared by the pipeline components
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.engine = engine or SnapshotEngine(
            batch_pages=config.snapshot.batch_pages,
            busy_delay=config.snapshot.busy_delay_ms / 1000.0,
            verify_integrity=config.snapshot.verify_integrity,
            logger=self.logger,
        )
        self.client = client or TransportClient(
            config.endpoint,
            config.transfer,
            progress_callback=self._make_progress_logger(),
            sleep=sleep,
            transfer_factory=transfer_factory,
            logger=self.logger,
        )
        self.state = PipelineState.IDLE
        self.last_report: RunReport | None = None

    def run(self) -> bool:
        """Execute one backup pass.

        Returns:
            True if the snapshot was uploaded, False otherwise
        """
        start_time = time.time()
        self.state = PipelineState.IDLE
        artifact_path: Path | None = None
        snapshot: SnapshotResult | None = None
        upload: UploadResult | None = None
        failure: SnapshipError | None = None
        error: str | None = None

        try:
            self.config.validate()

            artifact_path = reserve_artifact_path(
                self.config.snapshot.output_dir,
                self.config.snapshot.artifact_prefix,
                self.clock(),
            )
            with owned_artifact(artifact_path, self.logger):
                self.state = PipelineState.SNAPSHOTTING
                snapshot = self._snapshot(artifact_path)

                if snapshot.success:
                    self.logger.info(f"Database binary backup created at: {artifact_path}")
                    self.state = PipelineState.UPLOADING
                    remote_dir = self.config.endpoint.remote_dir
                    self.logger.info(f"Starting upload to directory: {remote_dir}")
                    upload = self.client.upload(artifact_path, remote_dir)
                    failure = None if upload.success else upload.error
                else:
                    failure = snapshot.error

                if snapshot.success and upload.success:
                    self.logger.info("Upload finished successfully.")
                elif failure is None:
                    failure = SnapshipError("Backup/upload failed without error detail")

        except SnapshipError as e:
            failure = e
        except Exception as e:
            error = str(e)
            self.logger.error(f"Unexpected exception during backup/upload: {e}", exc_info=True)
        except BaseException:
            self.state = PipelineState.CLEANED_FAILED
            raise

        if failure is not None:
            error = failure.message
            self.logger.error(
                f"Backup/upload failed: {failure.message}",
                extra={"code": failure.code, "details": failure.details},
            )

        success = error is None
        self.state = PipelineState.CLEANED_SUCCESS if success else PipelineState.CLEANED_FAILED
        self.last_report = RunReport(
            success=success,
            state=self.state,
            artifact_path=artifact_path,
            snapshot=snapshot,
            upload=upload,
            duration_ms=int((time.time() - start_time) * 1000),
            error=error,
        )
        return success

    def _snapshot(self, artifact_path: Path) -> SnapshotResult:
        source_path = Path(self.config.snapshot.source_path)
        if not source_path.is_file():
            return SnapshotResult(
                success=False,
                artifact=None,
                steps=0,
                busy_retries=0,
                duration_ms=0,
                error=SnapshotError("source database does not exist", path=str(source_path)),
            )

        try:
            source = sqlite3.connect(str(source_path), timeout=0)
        except sqlite3.Error as e:
            return SnapshotResult(
                success=False,
                artifact=None,
                steps=0,
                busy_retries=0,
                duration_ms=0,
                error=SnapshotError(f"cannot open source database: {e}", path=str(source_path)),
            )

        try:
            return self.engine.snapshot_to_file(source, artifact_path)
        finally:
            source.close()

    def _make_progress_logger(self) -> Callable[[int, int], None]:
        last_percent = -1
        last_sent = 0

        def log_progress(sent: int, total: int) -> None:
            nonlocal last_percent, last_sent
            if sent <= last_sent:  # new attempt
                last_percent = -1
            last_sent = sent
            if total <= 0:
                return
            percent = int(sent * 100 / total)
            if percent != last_percent:
                last_percent = percent
                self.logger.debug(f"Upload progress: {percent}%")

        return log_progress
