"""
FTPS transfer primitive for snapship.

Uploads one file per attempt over explicit FTPS (AUTH TLS) using
``ftplib.FTP_TLS``.

Security policy:
    - The control channel is upgraded with AUTH TLS before login
    - The data channel is protected with PROT P before STOR
    - verify_tls=False keeps both channels encrypted but disables
      certificate and host name validation. The server is then
      unauthenticated and a man-in-the-middle can read the upload;
      use it only for lab setups with self-signed certificates.

Invariants:
    - Every ftplib failure becomes a TransferStatus(ok=False)
    - The control connection is closed after every attempt
    - Missing remote directories are created before STOR

How to change safely:
    - Never fall back to plain FTP
    - Keep timeouts applied to both connect and response waits
"""

from __future__ import annotations

import ftplib
import logging
import ssl
from typing import BinaryIO

from ..config import EndpointConfig, TransferConfig
from ..errors import ConfigurationError
from .base import (
    ProgressAborted,
    ProgressCallback,
    ResponseCallback,
    TransferRequest,
    TransferStatus,
)

logger = logging.getLogger(__name__)


def build_ssl_context(config: TransferConfig) -> ssl.SSLContext:
    """Create the TLS context for control and data channels.

    Raises:
        ConfigurationError: If the CA file cannot be loaded
    """
    try:
        context = ssl.create_default_context(cafile=config.ca_file)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"Cannot load CA file {config.ca_file}: {e}", field_name="ca_file")

    if not config.verify_tls:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class FtpsTransfer:
    """Explicit FTPS upload backend.

    Example:
        >>> transfer = FtpsTransfer(endpoint, TransferConfig())
        >>> with open("db_backup.sqlite", "rb") as f:
        ...     status = transfer.perform(request, f, on_response=print)
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        config: TransferConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            endpoint: Remote endpoint
            config: Transfer configuration
            logger: Logger for diagnostics

        Raises:
            ConfigurationError: If the TLS context cannot be built
        """
        self.endpoint = endpoint
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.context = build_ssl_context(config)

        if not config.verify_tls:
            self.logger.warning(
                f"TLS verification disabled for {endpoint.host}: traffic is encrypted "
                "but the server identity is not checked"
            )

    def perform(
        self,
        request: TransferRequest,
        source: BinaryIO,
        on_response: ResponseCallback,
        on_progress: ProgressCallback | None = None,
    ) -> TransferStatus:
        ftp = ftplib.FTP_TLS(context=self.context, timeout=self.config.timeout_seconds)
        if self.config.verbose:
            ftp.set_debuglevel(2)

        sent = 0

        def on_block(block: bytes) -> None:
            nonlocal sent
            sent += len(block)
            if on_progress is not None:
                on_progress(sent, request.total_bytes)

        try:
            on_response(ftp.connect(self.endpoint.host, self.endpoint.port))
            on_response(ftp.auth())
            on_response(ftp.login(self.endpoint.username, self.endpoint.password))
            on_response(ftp.prot_p())
            self._enter_directory(ftp, request.remote_dir, on_response)

            reply = ftp.storbinary(
                f"STOR {request.filename}",
                source,
                blocksize=self.config.block_size,
                callback=on_block,
            )
            on_response(reply)

            try:
                on_response(ftp.quit())
            except ftplib.all_errors as e:
                # The file is already stored
                self.logger.debug(f"QUIT failed after successful upload: {e}")

            return TransferStatus(ok=True, detail=reply)

        except ProgressAborted as e:
            return TransferStatus(ok=False, detail=f"progress callback failed: {e}")
        except ftplib.all_errors as e:
            return TransferStatus(ok=False, detail=describe_error(e))
        finally:
            ftp.close()

    def _enter_directory(
        self, ftp: ftplib.FTP_TLS, remote_dir: str, on_response: ResponseCallback
    ) -> None:
        """Change into remote_dir, creating missing components."""
        for part in (p for p in remote_dir.split("/") if p):
            try:
                on_response(ftp.cwd(part))
            except ftplib.error_perm:
                self.logger.debug(f"Creating remote directory component: {part}")
                ftp.mkd(part)
                on_response(ftp.cwd(part))


def describe_error(error: BaseException) -> str:
    """Readable detail for a transfer failure."""
    message = str(error).strip()
    name = type(error).__name__
    return f"{name}: {message}" if message else name
