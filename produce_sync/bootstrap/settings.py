from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

APP_DIR_NAME = "ProduceSync"
DB_FILENAME = "produce_sync.db"

DEFAULT_SETTLE_DELAY_SECONDS = 1.0
DEFAULT_DEBOUNCE_MS = 500
DEFAULT_CACHE_TTL_MINUTES = 60
DEFAULT_TASK_TIMEOUT_SECONDS = 60.0
DEFAULT_RETRY_INITIAL_SECONDS = 5.0
DEFAULT_RETRY_MULTIPLIER = 2.0
DEFAULT_RETRY_MAX_SECONDS = 300.0
DEFAULT_STORAGE_QUOTA_BYTES = 5 * 1024 * 1024


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get("PRODUCE_SYNC_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / APP_DIR_NAME / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def resolve_data_dir() -> Path:
    env_dir = os.environ.get("PRODUCE_SYNC_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    appdata = os.environ.get("LOCALAPPDATA")
    if appdata:
        base_dir = Path(appdata)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / APP_DIR_NAME


def _safe_int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        logger.warning("Invalid integer in %s=%r, using %s", name, raw_value, default)
        return default


def _safe_float_env(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        value = float(raw_value)
    except ValueError:
        logger.warning("Invalid number in %s=%r, using %s", name, raw_value, default)
        return default
    if value < 0:
        return default
    return value


@dataclass(frozen=True)
class SyncSettings:
    db_path: Path
    data_dir: Path
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    cache_ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES
    task_timeout_seconds: float | None = DEFAULT_TASK_TIMEOUT_SECONDS
    retry_initial_seconds: float = DEFAULT_RETRY_INITIAL_SECONDS
    retry_multiplier: float = DEFAULT_RETRY_MULTIPLIER
    retry_max_seconds: float = DEFAULT_RETRY_MAX_SECONDS
    storage_quota_bytes: int | None = DEFAULT_STORAGE_QUOTA_BYTES

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000


def load_settings() -> SyncSettings:
    data_dir = resolve_data_dir()
    db_env = os.environ.get("PRODUCE_SYNC_DB_PATH")
    db_path = Path(db_env) if db_env else data_dir / DB_FILENAME

    timeout = _safe_float_env("PRODUCE_SYNC_TASK_TIMEOUT_SECONDS", DEFAULT_TASK_TIMEOUT_SECONDS)
    quota = _safe_int_env("PRODUCE_SYNC_STORAGE_QUOTA_BYTES", DEFAULT_STORAGE_QUOTA_BYTES)
    debounce_ms = _safe_int_env("PRODUCE_SYNC_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS)

    return SyncSettings(
        db_path=db_path,
        data_dir=data_dir,
        settle_delay_seconds=_safe_float_env("PRODUCE_SYNC_SETTLE_DELAY_SECONDS", DEFAULT_SETTLE_DELAY_SECONDS),
        debounce_ms=max(0, debounce_ms),
        cache_ttl_minutes=max(0, _safe_int_env("PRODUCE_SYNC_CACHE_TTL_MINUTES", DEFAULT_CACHE_TTL_MINUTES)),
        task_timeout_seconds=timeout or None,
        retry_initial_seconds=_safe_float_env("PRODUCE_SYNC_RETRY_INITIAL_SECONDS", DEFAULT_RETRY_INITIAL_SECONDS),
        retry_multiplier=_safe_float_env("PRODUCE_SYNC_RETRY_MULTIPLIER", DEFAULT_RETRY_MULTIPLIER),
        retry_max_seconds=_safe_float_env("PRODUCE_SYNC_RETRY_MAX_SECONDS", DEFAULT_RETRY_MAX_SECONDS),
        storage_quota_bytes=quota if quota > 0 else None,
    )
