from __future__ import annotations

import json
import logging
import os
import platform
import sys
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import TracebackType
from typing import Any

from produce_sync.core.observability import current_cycle_id, current_task_id

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
MAIN_LOG_NAME = "produce_sync.log"
OPERATIONAL_ERROR_LOG_NAME = "operational_errors.log"
CRASH_LOG_NAME = "crash.log"


class JsonLinesFormatter(logging.Formatter):
    """One JSON object per line.

    ``cycle_id`` is always present (null outside a sync cycle); ``task_id``,
    ``incident_id``, ``extra`` and ``exc_info`` only when set.
    """

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
            "cycle_id": getattr(record, "cycle_id", None) or current_cycle_id(),
        }
        for key, fallback in (("task_id", current_task_id), ("incident_id", None)):
            value = getattr(record, key, None) or (fallback() if fallback else None)
            if value:
                event[key] = value

        payload_extra = getattr(record, "extra", None)
        if isinstance(payload_extra, dict) and payload_extra:
            event["extra"] = payload_extra
        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False, default=str)


class LevelRangeFilter(logging.Filter):
    def __init__(self, low: int, high: int) -> None:
        super().__init__()
        self._low = low
        self._high = high

    def filter(self, record: logging.LogRecord) -> bool:
        return self._low <= record.levelno <= self._high


@dataclass(frozen=True)
class LogFileSpec:
    file_name: str
    min_level: int | None
    max_level: int = logging.CRITICAL


# min_level None means "the level passed to configure_logging".
LOG_FILES = (
    LogFileSpec(MAIN_LOG_NAME, None),
    LogFileSpec(OPERATIONAL_ERROR_LOG_NAME, logging.ERROR, logging.ERROR),
    LogFileSpec(CRASH_LOG_NAME, logging.CRITICAL),
)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ[name])
    except (KeyError, ValueError):
        return default


def _open_handler(log_dir: Path, log_file: LogFileSpec, *, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    min_level = level if log_file.min_level is None else log_file.min_level
    handler = RotatingFileHandler(
        log_dir / log_file.file_name,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(min_level)
    handler.addFilter(LevelRangeFilter(min_level, log_file.max_level))
    handler.setFormatter(JsonLinesFormatter())
    return handler


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int = logging.INFO,
) -> None:
    """Routes the root logger to the JSON-Lines files in ``log_dir``, replacing earlier handlers."""
    log_dir.mkdir(parents=True, exist_ok=True)
    resolved_max_bytes = max_bytes or _env_int("PRODUCE_SYNC_LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)
    for log_file in LOG_FILES:
        root_logger.addHandler(
            _open_handler(log_dir, log_file, level=level, max_bytes=resolved_max_bytes, backup_count=backup_count)
        )


def write_crash_log(
    exc_type: type[BaseException],
    exc: BaseException,
    tb: TracebackType | None,
    log_dir: Path,
) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    runtime = {"pid": os.getpid(), "argv": sys.argv, "python": platform.python_version(), "platform": platform.platform()}
    logging.getLogger("produce_sync.crash").critical(
        "Process crashed: %s", exc_type.__name__, exc_info=(exc_type, exc, tb), extra={"extra": runtime}
    )
    return log_dir / CRASH_LOG_NAME


def install_exception_hook(log_dir: Path) -> None:
    """Sends uncaught exceptions to ``crash.log``; prints them to stderr when the log is unwritable."""

    def _handler(exc_type: type[BaseException], exc: BaseException, tb: TracebackType | None) -> None:
        try:
            write_crash_log(exc_type, exc, tb, log_dir)
        except OSError as log_error:
            sys.stderr.write(f"crash log unavailable ({log_error}); traceback follows\n")
            sys.stderr.write("".join(traceback.format_exception(exc_type, exc, tb)))

    sys.excepthook = _handler
