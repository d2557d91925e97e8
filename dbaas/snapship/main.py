"""
snapship - command-line entry point.

Snapshots a SQLite database and uploads it to an FTPS server in one pass.

Usage:
    snapship <source_db> <ftp_host> <ftp_port> <ftp_user> <ftp_pass_or_-> <ftp_dir> [options]

    If <ftp_pass_or_-> is '-', the password is read from FTP_PASS.

Exit codes:
    0 - backup uploaded
    1 - invalid arguments
    2 - backup or upload failed
    3 - configuration error

Invariants:
    - Credentials are never printed or logged unmasked
    - The exit code is derived only from the pipeline's boolean outcome
      and argument/configuration validation
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from dataclasses import replace

from .config import (
    PASSWORD_FROM_ENV,
    EndpointConfig,
    ObservabilityConfig,
    PipelineConfig,
    SnapshotConfig,
    TransferConfig,
    mask_secret,
)
from .errors import ConfigurationError
from .observability import setup_logging
from .pipeline import BackupPipeline
from .snapshot import SampleStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_ARGS = 1
EXIT_UPLOAD_FAILED = 2
EXIT_CONFIG_ERROR = 3

LOG_LEVEL_CHOICES = {"debug": "DEBUG", "info": "INFO", "warn": "WARNING", "error": "ERROR"}


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with EXIT_INVALID_ARGS."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(EXIT_INVALID_ARGS, f"{self.prog}: error: {message}\n")


def _port(value: str) -> int:
    port = int(value)
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError("FTP port out of valid range (1-65535)")
    return port


def _non_negative(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must be >= 0")
    return number


def _positive(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be > 0")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = _ArgumentParser(
        prog="snapship",
        description="Snapshot a SQLite database and upload it to an FTPS server",
        epilog=(
            f"Exit codes: {EXIT_INVALID_ARGS} (bad args), {EXIT_UPLOAD_FAILED} "
            f"(backup/upload failed), {EXIT_CONFIG_ERROR} (config error)"
        ),
    )
    parser.add_argument("source_db", help="SQLite database to back up")
    parser.add_argument("ftp_host", help="FTPS server host")
    parser.add_argument("ftp_port", type=_port, help="FTPS control port")
    parser.add_argument("ftp_user", help="FTPS user name")
    parser.add_argument("ftp_pass", help="FTPS password, or '-' to read FTP_PASS")
    parser.add_argument("ftp_dir", help="Remote directory")
    parser.add_argument(
        "--no-ssl-verify",
        action="store_true",
        help="Disable certificate/host verification (still encrypted, server not authenticated)",
    )
    parser.add_argument(
        "--retries", type=_non_negative, help="Upload attempts (default: FTP_RETRIES or 3)"
    )
    parser.add_argument(
        "--timeout",
        type=_positive,
        help="Connection & response timeout in seconds (default: FTP_TIMEOUT or 30)",
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVEL_CHOICES),
        help="Log level (default: LOG_LEVEL or info)",
    )
    parser.add_argument(
        "--log-format", choices=["text", "json"], help="Log format (default: LOG_FORMAT or text)"
    )
    parser.add_argument(
        "--log-file",
        action="store_true",
        help="Also log to <log-dir>/app_<ts>.log (default: LOG_TO_FILE)",
    )
    parser.add_argument("--log-dir", help="Directory for log files (default: LOG_DIR or logs)")
    parser.add_argument("--prefix", help="Artifact name prefix (default: source file stem)")
    parser.add_argument(
        "--output-dir",
        help="Directory for the temporary artifact (default: SNAPSHIP_OUTPUT_DIR or .)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="FTP protocol diagnostics")
    parser.add_argument(
        "--seed-rows",
        type=_non_negative,
        default=0,
        help="Demo: create the people table and insert N random rows first",
    )
    parser.add_argument("--dump-sql", help="Demo: also write a textual SQL dump to this path")
    return parser


def resolve_password(password: str) -> str:
    """Resolve the '-' placeholder from FTP_PASS.

    Raises:
        ConfigurationError: If '-' is given and FTP_PASS is unset
    """
    if password != PASSWORD_FROM_ENV:
        return password
    env_password = os.getenv("FTP_PASS")
    if env_password is None:
        raise ConfigurationError(
            "Password argument '-' specified but FTP_PASS environment variable is not set",
            field_name="password",
        )
    return env_password


def _given(**values: object) -> dict[str, object]:
    return {name: value for name, value in values.items() if value is not None}


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    """Build the pipeline configuration from parsed arguments.

    Transfer, snapshot and logging sections start from the environment
    (FTP_CA_FILE, SNAPSHOT_BATCH_PAGES, LOG_MAX_BYTES, ...); options given
    on the command line override them. The endpoint comes from the
    positional arguments only.

    Raises:
        ConfigurationError: If an environment value cannot be parsed or the
            password placeholder cannot be resolved
    """
    transfer = replace(
        TransferConfig.from_env(),
        **_given(
            timeout_seconds=None if args.timeout is None else float(args.timeout),
            max_retries=args.retries,
            verify_tls=False if args.no_ssl_verify else None,
            verbose=True if args.verbose else None,
        ),
    )
    snapshot = replace(
        SnapshotConfig.from_env(),
        **_given(source_path=args.source_db, output_dir=args.output_dir, prefix=args.prefix),
    )
    observability = replace(
        ObservabilityConfig.from_env(),
        **_given(
            log_level=LOG_LEVEL_CHOICES.get(args.log_level),
            log_format=args.log_format,
            log_dir=args.log_dir,
            log_to_file=True if args.log_file else None,
        ),
    )
    return PipelineConfig(
        endpoint=EndpointConfig(
            host=args.ftp_host,
            port=args.ftp_port,
            username=args.ftp_user,
            password=resolve_password(args.ftp_pass),
            remote_dir=args.ftp_dir,
        ),
        transfer=transfer,
        snapshot=snapshot,
        observability=observability,
    )


def seed_demo_data(source_db: str, rows: int, dump_sql: str | None) -> None:
    """Populate the source with sample rows (demo mode)."""
    with SampleStore(source_db) as store:
        store.create_table()
        if rows:
            store.insert_random_rows(rows)
        logger.info(f"Total rows after insert: {store.row_count()}")
        if dump_sql:
            store.dump_to_file(dump_sql)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        config.validate()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(config.observability)
    logger.info(
        f"Starting backup. FTP host: {config.endpoint.host}:{config.endpoint.port}, "
        f"user: {config.endpoint.username}, pass: {mask_secret(config.endpoint.password)}"
    )
    config.log_config()

    if args.seed_rows or args.dump_sql:
        try:
            seed_demo_data(args.source_db, args.seed_rows, args.dump_sql)
        except Exception as e:
            logger.error(f"Failed to prepare demo data: {e}", exc_info=True)
            print("Backup and upload failed. See logs for details.", file=sys.stderr)
            return EXIT_UPLOAD_FAILED

    pipeline = BackupPipeline(config)
    if not pipeline.run():
        print("Backup and upload failed. See logs for details.", file=sys.stderr)
        return EXIT_UPLOAD_FAILED

    print("Backup and upload completed successfully.")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
