"""
Logging setup for snapship.

Every component receives a ``logging.Logger`` (defaulting to its module
logger); this module configures where those records go.

Targets:
    - Console (stderr)
    - Optional file: <log_dir>/app_<YYYY-MM-DD_HH-MM-SS>.log, rotated when
      max_log_bytes is set

Invariants:
    - Console and file handlers share one lock, so records from concurrent
      runs are written whole and in the same order to both targets
    - Logging never raises into the pipeline
    - Reconfiguring closes the handlers the root logger held before
"""

from __future__ import annotations

import logging
import logging.handlers
import threading
import time
from pathlib import Path

import json_log_formatter

from .config import ObservabilityConfig

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def build_formatter(log_format: str) -> logging.Formatter:
    """Create the formatter for a log format name."""
    if log_format == "json":
        return json_log_formatter.JSONFormatter()
    return logging.Formatter(TEXT_FORMAT)


def log_file_path(log_dir: str | Path, now: float | None = None) -> Path:
    """Timestamped log file path inside log_dir."""
    stamp = time.strftime("%Y-%m-%d_%H-%M-%S", time.localtime(now))
    return Path(log_dir) / f"app_{stamp}.log"


def setup_logging(config: ObservabilityConfig) -> list[logging.Handler]:
    """Configure root logging based on configuration.

    Args:
        config: Observability configuration

    Returns:
        The handlers installed on the root logger
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    formatter = build_formatter(config.log_format)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.log_to_file:
        path = log_file_path(config.log_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if config.max_log_bytes > 0:
                handlers.append(
                    logging.handlers.RotatingFileHandler(
                        path, maxBytes=config.max_log_bytes, backupCount=5, encoding="utf-8"
                    )
                )
            else:
                handlers.append(logging.FileHandler(path, encoding="utf-8"))
        except OSError as e:
            # Console logging still works; report and carry on
            logging.getLogger(__name__).warning(f"Failed to create log file {path}: {e}")

    shared_lock = threading.RLock()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.lock = shared_lock

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for old in root_logger.handlers[:]:
        root_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        root_logger.addHandler(handler)

    return handlers
