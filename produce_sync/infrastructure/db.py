from __future__ import annotations

import sqlite3
from pathlib import Path

from produce_sync.bootstrap.settings import DB_FILENAME, resolve_data_dir

DEFAULT_BUSY_TIMEOUT_MS = 30000

_PRAGMAS = (
    ("journal_mode", "WAL"),
    ("synchronous", "NORMAL"),
)


def default_db_path() -> Path:
    return resolve_data_dir() / DB_FILENAME


def get_connection(
    db_path: Path | None = None,
    *,
    busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    check_same_thread: bool = False,
) -> sqlite3.Connection:
    """Opens the local store, creating its directory on first use."""
    path = db_path or default_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(path, timeout=max(1.0, busy_timeout_ms / 1000), check_same_thread=check_same_thread)
    connection.row_factory = sqlite3.Row
    for name, value in (*_PRAGMAS, ("busy_timeout", int(busy_timeout_ms))):
        connection.execute(f"PRAGMA {name}={value}")
    return connection
