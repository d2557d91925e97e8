"""
Transport client for snapship.

The TransportClient uploads a local artifact to a remote directory,
retrying failed attempts with exponential backoff (tenacity).

URL format:
    ftp://<host>[:<port>]/<remote_dir>/<filename>

Retry policy:
    - Attempts are numbered from 1 up to max_retries (at least 1)
    - After failed attempt k (with attempts left) the client sleeps
      0.5s * 2 ** (k - 1), capped at 32s
    - The first successful attempt ends the loop
    - Exceptions raised during an attempt are never retried

Invariants:
    - A missing or unreadable local file fails with no further attempts
    - A primitive that cannot be initialised fails with zero attempts
    - The per-attempt timeout bounds one attempt only; total time across
      retries is the sum of attempts and backoff sleeps
    - Remote atomicity is not guaranteed: a failed attempt may leave a
      partial remote file

How to change safely:
    - Keep backoff_wait() in sync with the retry policy above
    - Test with a fake primitive and fake sleep; never with real time
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from ..config import EndpointConfig, TransferConfig
from ..errors import ConfigurationError, LocalResourceError, SnapshipError, TransportError
from .base import (
    ProgressAborted,
    ProgressCallback,
    TransferPrimitive,
    TransferRequest,
    TransferStatus,
)
from .ftps import FtpsTransfer

logger = logging.getLogger(__name__)

BACKOFF_BASE_SECONDS = 0.5
BACKOFF_MAX_SECONDS = 32.0

TransferFactory = Callable[[EndpointConfig, TransferConfig, logging.Logger], TransferPrimitive]


def backoff_wait() -> wait_exponential:
    """Wait strategy applied between failed attempts."""
    return wait_exponential(multiplier=BACKOFF_BASE_SECONDS, max=BACKOFF_MAX_SECONDS)


def clean_remote_dir(remote_dir: str) -> str:
    """Normalise a remote directory for use in a URL path."""
    return remote_dir.replace("\\", "/").strip("/")


@dataclass
class TransferAttempt:
    """One upload attempt.

    Attributes:
        number: Attempt number (from 1)
        success: Whether the attempt succeeded
        detail: Error detail (failures) or final server reply (success)
        duration_ms: Attempt duration
    """

    number: int
    success: bool
    detail: str | None
    duration_ms: int


@dataclass
class UploadResult:
    """Result of an upload.

    Attributes:
        success: Whether the file was uploaded
        url: Target URL
        attempts: Attempts made against the transfer primitive
        slept_seconds: Total backoff time
        error: Error if failed
    """

    success: bool
    url: str | None
    attempts: list[TransferAttempt] = field(default_factory=list)
    slept_seconds: float = 0.0
    error: SnapshipError | None = None


class TransportClient:
    """Uploads files to an FTPS endpoint with retry and backoff.

    Attributes:
        endpoint: Remote endpoint
        config: Transfer configuration
        max_retries: Effective attempt limit (at least 1)

    Example:
        >>> client = TransportClient(endpoint, TransferConfig(max_retries=3))
        >>> result = client.upload("db_backup_20250101_120000.sqlite")
        >>> result.success
        True
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        config: TransferConfig | None = None,
        progress_callback: ProgressCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
        transfer_factory: TransferFactory = FtpsTransfer,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Remote endpoint
            config: Transfer configuration (defaults apply when omitted)
            progress_callback: Receives (bytes_so_far, total_bytes)
            sleep: Sleep strategy used for backoff
            transfer_factory: Creates the transfer primitive
            logger: Logger for attempts and server responses
        """
        self.endpoint = endpoint
        self.config = config or TransferConfig()
        self.max_retries = max(1, self.config.max_retries)
        self.progress_callback = progress_callback
        self.sleep = sleep
        self.transfer_factory = transfer_factory
        self.logger = logger or logging.getLogger(__name__)

    def build_url(self, remote_dir: str, filename: str) -> str:
        """Build the target URL for a file in a remote directory."""
        url = f"ftp://{self.endpoint.host}"
        if self.endpoint.port > 0:
            url += f":{self.endpoint.port}"
        cleaned = clean_remote_dir(remote_dir)
        if cleaned:
            url += f"/{cleaned}"
        return f"{url}/{filename}"

    def upload(self, local_path: str | Path, remote_dir: str | None = None) -> UploadResult:
        """Upload a local file.

        Args:
            local_path: File to upload
            remote_dir: Remote directory (defaults to the endpoint's)

        Returns:
            UploadResult indicating success/failure
        """
        local_path = Path(local_path)
        remote_dir = self.endpoint.remote_dir if remote_dir is None else remote_dir
        self.logger.info(f"Preparing to upload file: {local_path} to {remote_dir}")

        if not local_path.is_file():
            return UploadResult(
                success=False,
                url=None,
                error=LocalResourceError(
                    f"Local file does not exist: {local_path}", path=str(local_path)
                ),
            )

        url = self.build_url(remote_dir, local_path.name)
        request = TransferRequest(
            url=url,
            remote_dir=clean_remote_dir(remote_dir),
            filename=local_path.name,
            total_bytes=local_path.stat().st_size,
        )

        try:
            primitive = self.transfer_factory(self.endpoint, self.config, self.logger)
        except ConfigurationError as e:
            return UploadResult(success=False, url=url, error=e)

        result = UploadResult(success=False, url=url)
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=backoff_wait(),
            retry=retry_if_result(lambda status: not status.ok),
            sleep=self.sleep,
            before_sleep=lambda state: self._log_backoff(state, result),
            retry_error_callback=lambda state: state.outcome.result(),
        )

        try:
            status = retrying(self._attempt, primitive, local_path, request, result)
        except LocalResourceError as e:
            result.error = e
            return result

        if status.ok:
            result.success = True
            return result

        last_error = status.detail or "unknown error"
        result.error = TransportError(
            f"Upload failed after {len(result.attempts)} attempts: {last_error}",
            url=url,
            attempts=len(result.attempts),
            last_error=last_error,
        )
        return result

    def _attempt(
        self,
        primitive: TransferPrimitive,
        local_path: Path,
        request: TransferRequest,
        result: UploadResult,
    ) -> TransferStatus:
        number = len(result.attempts) + 1
        self.logger.info(f"Upload attempt {number}/{self.max_retries} to URL: {request.url}")
        started = time.monotonic()

        try:
            source = open(local_path, "rb")
        except OSError as e:
            raise LocalResourceError(
                f"Failed to open local file: {local_path}: {e}", path=str(local_path)
            ) from e

        with source:
            status = primitive.perform(request, source, self._log_response, self._guard_progress())

        result.attempts.append(
            TransferAttempt(
                number=number,
                success=status.ok,
                detail=status.detail,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
        )

        if status.ok:
            self.logger.info(f"Upload succeeded: {request.filename}")
        else:
            self.logger.warning(f"Upload attempt {number} failed: {status.detail or 'unknown error'}")
        return status

    def _log_backoff(self, state: RetryCallState, result: UploadResult) -> None:
        delay = state.next_action.sleep
        self.logger.info(f"Retrying after {delay:.1f}s backoff...")
        result.slept_seconds += delay

    def _log_response(self, text: str) -> None:
        for line in (text or "").splitlines():
            if line.strip():
                self.logger.info(f"FTP server: {line}")

    def _guard_progress(self) -> ProgressCallback | None:
        callback = self.progress_callback
        if callback is None:
            return None

        def guarded(sent: int, total: int) -> None:
            try:
                callback(sent, total)
            except Exception as e:
                raise ProgressAborted(str(e)) from e

        return guarded
