"""Logging for ghsync.

A single named logger writes human-readable lines to stderr and, when a log
directory is configured, to a rotating session log file. Remote mutations are
recorded through ``log_action`` as one compact JSON payload per line so CI
logs can be grepped for what actually changed.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional


LOGGER_NAME = "ghsync"

# Environment variables for configuration
ENV_LOG_DIR = "GHSYNC_LOG_DIR"
ENV_LOG_LEVEL = "GHSYNC_LOG_LEVEL"
ENV_LOG_MAX_BYTES = "GHSYNC_LOG_MAX_BYTES"
ENV_LOG_BACKUP_COUNT = "GHSYNC_LOG_BACKUP_COUNT"

# Defaults
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

_VERBOSITY_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]

_logger_initialized = False
_session_start: Optional[str] = None


def _get_log_level() -> int:
    """Get log level from environment, defaulting to WARNING."""
    level_name = os.getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.WARNING)


def level_for_verbosity(verbose: int, base: Optional[str] = None) -> int:
    """Map a ``-v`` count onto a log level, starting from ``base``."""
    start = getattr(logging, (base or DEFAULT_LOG_LEVEL).upper(), logging.WARNING)
    if verbose <= 0:
        return start
    candidates = [start] + [lvl for lvl in _VERBOSITY_LEVELS if lvl < start]
    return candidates[min(verbose, len(candidates) - 1)]


def _get_log_file_path(log_dir: Optional[str] = None) -> Optional[Path]:
    """Get the session log file path, or None when file logging is off.

    File logging is enabled only when a directory is given explicitly or via
    GHSYNC_LOG_DIR.
    """
    global _session_start
    directory = log_dir or os.getenv(ENV_LOG_DIR)
    if not directory:
        return None

    path = Path(directory).expanduser()
    path.mkdir(parents=True, exist_ok=True)

    if _session_start is None:
        _session_start = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H%M%S")
    # Session-based filename: ghsync_2024-01-15_143022.log
    return path / f"ghsync_{_session_start}.log"


def configure_logging(
    level: Optional[int] = None,
    *,
    log_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> logging.Logger:
    """(Re)initialize the ghsync logger.

    Called once by the CLI after flags and config are known. Library callers
    that never call this get the environment-driven defaults lazily.
    """
    global _logger_initialized
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.propagate = True
    _logger_initialized = True

    log_level = level if level is not None else _get_log_level()
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        "[%(levelname)s %(asctime)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    log_file = _get_log_file_path(log_dir)
    if log_file:
        if max_bytes is None:
            max_bytes = int(os.getenv(ENV_LOG_MAX_BYTES, DEFAULT_MAX_BYTES))
        if backup_count is None:
            backup_count = int(os.getenv(ENV_LOG_BACKUP_COUNT, DEFAULT_BACKUP_COUNT))
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(min(log_level, logging.INFO))
        logger.addHandler(file_handler)
        # File captures INFO even when stderr is quieter
        logger.setLevel(min(log_level, logging.INFO))

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(log_level)
    logger.addHandler(stream_handler)

    return logger


def _get_logger() -> logging.Logger:
    if not _logger_initialized:
        return configure_logging()
    return logging.getLogger(LOGGER_NAME)


def _with_fields(message: str, fields: Dict[str, Any]) -> str:
    if not fields:
        return message
    return f"{message} " + json.dumps(fields, separators=(",", ":"), sort_keys=True, default=str)


def log_action(
    action: str,
    *,
    outcome: str = "ok",
    duration_ms: Optional[float] = None,
    **fields: Any,
) -> None:
    """Emit a structured log line for a reconciliation step or remote mutation.

    Args:
        action: Name of the action being logged (e.g. ``"ref.update"``)
        outcome: Result status ("ok", "noop", "skipped", "error", "dry-run")
        duration_ms: How long the action took in milliseconds
        **fields: Additional fields to include
    """
    payload: Dict[str, Any] = {
        "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "action": action,
        "outcome": outcome,
    }
    if duration_ms is not None:
        payload["duration_ms"] = round(duration_ms, 2)
    if fields:
        payload.update(fields)

    _get_logger().info(json.dumps(payload, separators=(",", ":"), sort_keys=True, default=str))


def log_debug(message: str, **fields: Any) -> None:
    """Log a debug message with optional structured fields."""
    logger = _get_logger()
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_with_fields(message, fields))


def log_info(message: str, **fields: Any) -> None:
    _get_logger().info(_with_fields(message, fields))


def log_warning(message: str, **fields: Any) -> None:
    """Log a warning message with optional structured fields."""
    _get_logger().warning(_with_fields(message, fields))


def log_error(message: str, **fields: Any) -> None:
    """Log an error message with optional structured fields."""
    _get_logger().error(_with_fields(message, fields))


@contextmanager
def timeit(action: str, **fields: Any):
    """Time a block and emit a structured log on exit.

    On exception, logs outcome="error" and re-raises. The yielded dict can be
    updated inside the block; its items are merged into the logged fields
    (``outcome`` in it overrides the default "ok").
    """
    start = time.perf_counter()
    result_info: Dict[str, Any] = {}
    try:
        yield result_info
    except Exception as exc:
        duration_ms = (time.perf_counter() - start) * 1000.0
        log_action(action, outcome="error", duration_ms=duration_ms, error=str(exc), **fields)
        raise
    duration_ms = (time.perf_counter() - start) * 1000.0
    outcome = result_info.pop("outcome", "ok")
    log_action(action, outcome=outcome, duration_ms=duration_ms, **{**fields, **result_info})
