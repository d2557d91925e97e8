"""
Configuration management for snapship.

Configuration comes from environment variables (or is built directly by the
CLI). This module provides typed, immutable configuration classes with
validation.

Invariants:
    - All settings except the source database and FTP host have defaults
    - Configuration is immutable for the duration of one pipeline run
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env var names stable; they are part of the deployment contract
    - Extend validate() for every new setting that can be wrong
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
LOG_FORMATS = ("text", "json")

# Password argument placeholder meaning "read it from FTP_PASS"
PASSWORD_FROM_ENV = "-"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'", field_name=name)


def mask_secret(secret: str) -> str:
    """Mask a secret for logging."""
    return "*" * len(secret) if secret else "<empty>"


@dataclass(frozen=True)
class EndpointConfig:
    """Remote FTPS endpoint.

    Attributes:
        host: Server host name or address
        port: Control channel port
        username: Login name (empty for anonymous)
        password: Login password
        remote_dir: Directory on the server that receives the artifact
    """

    host: str = ""
    port: int = 21
    username: str = ""
    password: str = field(default="", repr=False)
    remote_dir: str = ""

    @classmethod
    def from_env(cls) -> EndpointConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("FTP_HOST", ""),
            port=_env_int("FTP_PORT", "21"),
            username=os.getenv("FTP_USER", ""),
            password=os.getenv("FTP_PASS", ""),
            remote_dir=os.getenv("FTP_DIR", ""),
        )


@dataclass(frozen=True)
class TransferConfig:
    """Upload behaviour.

    Attributes:
        timeout_seconds: Bounds connect and each response wait of one attempt
        max_retries: Total attempts per upload (values below 1 count as 1)
        verify_tls: Validate the server certificate and host name. Turning
            this off still encrypts both channels but skips peer
            authentication, which makes man-in-the-middle attacks possible.
        verbose: Emit protocol-level diagnostics
        ca_file: Optional CA bundle used instead of the system trust store
        block_size: Bytes sent per data-channel write
    """

    timeout_seconds: float = 30.0
    max_retries: int = 3
    verify_tls: bool = True
    verbose: bool = False
    ca_file: str | None = None
    block_size: int = 8192

    @classmethod
    def from_env(cls) -> TransferConfig:
        """Load configuration from environment variables."""
        return cls(
            timeout_seconds=float(_env_int("FTP_TIMEOUT", "30")),
            max_retries=_env_int("FTP_RETRIES", "3"),
            verify_tls=_env_bool("FTP_SSL_VERIFY", "true"),
            verbose=_env_bool("FTP_VERBOSE", "false"),
            ca_file=os.getenv("FTP_CA_FILE"),
        )


@dataclass(frozen=True)
class SnapshotConfig:
    """Snapshot engine configuration.

    Attributes:
        source_path: SQLite database to back up
        output_dir: Directory receiving the temporary artifact
        prefix: Artifact name prefix (defaults to the source file stem)
        batch_pages: Pages copied per backup step
        busy_delay_ms: Wait before retrying a step the source reported busy
        verify_integrity: Run PRAGMA integrity_check on the finished copy
    """

    source_path: str = ""
    output_dir: str = "."
    prefix: str | None = None
    batch_pages: int = 1024
    busy_delay_ms: int = 50
    verify_integrity: bool = True

    @property
    def artifact_prefix(self) -> str:
        """Prefix used for artifact file names."""
        return self.prefix or Path(self.source_path).stem or "snapshot"

    @classmethod
    def from_env(cls) -> SnapshotConfig:
        """Load configuration from environment variables."""
        return cls(
            source_path=os.getenv("SNAPSHIP_SOURCE_DB", ""),
            output_dir=os.getenv("SNAPSHIP_OUTPUT_DIR", "."),
            prefix=os.getenv("SNAPSHIP_PREFIX") or None,
            batch_pages=_env_int("SNAPSHOT_BATCH_PAGES", "1024"),
            busy_delay_ms=_env_int("SNAPSHOT_BUSY_DELAY_MS", "50"),
            verify_integrity=_env_bool("SNAPSHOT_VERIFY", "true"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (text, json)
        log_dir: Directory for log files
        log_to_file: Also write logs to a timestamped file in log_dir
        max_log_bytes: Rotate the log file at this size (0 = never)
    """

    log_level: str = "INFO"
    log_format: str = "text"
    log_dir: str = "logs"
    log_to_file: bool = False
    max_log_bytes: int = 0

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "text").lower(),
            log_dir=os.getenv("LOG_DIR", "logs"),
            log_to_file=_env_bool("LOG_TO_FILE", "false"),
            max_log_bytes=_env_int("LOG_MAX_BYTES", "0"),
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Complete pipeline configuration.

    Attributes:
        endpoint: Remote endpoint
        transfer: Upload behaviour
        snapshot: Snapshot engine configuration
        observability: Logging configuration
    """

    endpoint: EndpointConfig = field(default_factory=EndpointConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    snapshot: SnapshotConfig = field(default_factory=SnapshotConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> PipelineConfig:
        """Load complete configuration from environment variables.

        Returns:
            PipelineConfig with all sections populated from environment.

        Raises:
            ConfigurationError: If required configuration is missing or invalid.
        """
        config = cls(
            endpoint=EndpointConfig.from_env(),
            transfer=TransferConfig.from_env(),
            snapshot=SnapshotConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        endpoint = self.endpoint
        if not endpoint.host:
            raise ConfigurationError("FTP host is required", field_name="host")
        if not 1 <= endpoint.port <= 65535:
            raise ConfigurationError(
                f"FTP port out of valid range (1-65535): {endpoint.port}", field_name="port"
            )
        if endpoint.password == PASSWORD_FROM_ENV:
            raise ConfigurationError(
                "Password placeholder '-' was not resolved from FTP_PASS", field_name="password"
            )

        if self.transfer.timeout_seconds <= 0:
            raise ConfigurationError("Timeout must be > 0", field_name="timeout_seconds")
        if self.transfer.block_size <= 0:
            raise ConfigurationError("Block size must be > 0", field_name="block_size")

        if not self.snapshot.source_path:
            raise ConfigurationError("Source database path is required", field_name="source_path")
        if self.snapshot.batch_pages <= 0:
            raise ConfigurationError("Batch pages must be > 0", field_name="batch_pages")
        if self.snapshot.busy_delay_ms < 0:
            raise ConfigurationError("Busy delay must be >= 0", field_name="busy_delay_ms")

        if self.observability.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level '{self.observability.log_level}'. "
                f"Must be one of: {', '.join(LOG_LEVELS)}",
                field_name="log_level",
            )
        if self.observability.log_format not in LOG_FORMATS:
            raise ConfigurationError(
                f"Invalid log format '{self.observability.log_format}'. Must be one of: text, json",
                field_name="log_format",
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Pipeline configuration loaded",
            extra={
                "ftp_host": self.endpoint.host,
                "ftp_port": self.endpoint.port,
                "ftp_user": self.endpoint.username,
                "ftp_pass": mask_secret(self.endpoint.password),
                "ftp_dir": self.endpoint.remote_dir,
                "timeout_seconds": self.transfer.timeout_seconds,
                "max_retries": self.transfer.max_retries,
                "verify_tls": self.transfer.verify_tls,
                "source_path": self.snapshot.source_path,
                "output_dir": self.snapshot.output_dir,
                "log_level": self.observability.log_level,
            },
        )
