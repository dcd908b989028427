from __future__ import annotations

import logging
import sqlite3
import time
from datetime import datetime, timezone
from typing import Callable, TypeVar

from produce_sync.core.errors import StorageError, StorageQuotaExceededError

logger = logging.getLogger(__name__)

_LOCKED_RETRY_BACKOFF_SECONDS = (0.05, 0.15, 0.3)
_T = TypeVar("_T")


def _is_locked_operational_error(error: sqlite3.OperationalError) -> bool:
    return "locked" in str(error).lower()


def _run_with_locked_retry(operation: Callable[[], _T], *, context: str) -> _T:
    for attempt, delay_seconds in enumerate(_LOCKED_RETRY_BACKOFF_SECONDS, start=1):
        try:
            return operation()
        except sqlite3.OperationalError as error:
            if not _is_locked_operational_error(error):
                raise
            logger.warning(
                "SQLite locked in %s (attempt=%s/%s); retrying in %.0fms",
                context,
                attempt,
                len(_LOCKED_RETRY_BACKOFF_SECONDS),
                delay_seconds * 1000,
            )
            time.sleep(delay_seconds)

    return operation()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class SqliteKeyValueStore:
    """String key/value store on the ``local_storage`` table.

    Each write commits before returning. With ``quota_bytes`` set, a write that
    would push the stored keys and values past the quota raises
    ``StorageQuotaExceededError`` and leaves the table untouched.
    """

    def __init__(self, connection: sqlite3.Connection, *, quota_bytes: int | None = None) -> None:
        self._connection = connection
        self._quota_bytes = quota_bytes

    def get(self, key: str) -> str | None:
        def _get() -> str | None:
            row = self._connection.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
            return None if row is None else row[0]

        return self._guard(_get, context="get")

    def set(self, key: str, value: str) -> None:
        def _set() -> None:
            if self._quota_bytes is not None:
                self._check_quota(key, value)
            with self._connection:
                self._connection.execute(
                    """
                    INSERT INTO local_storage (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, value, _now_iso()),
                )

        self._guard(_set, context="set")

    def remove(self, key: str) -> bool:
        def _remove() -> bool:
            with self._connection:
                cursor = self._connection.execute("DELETE FROM local_storage WHERE key = ?", (key,))
            return cursor.rowcount > 0

        return self._guard(_remove, context="remove")

    def keys(self, prefix: str = "") -> list[str]:
        def _keys() -> list[str]:
            rows = self._connection.execute(
                "SELECT key FROM local_storage WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
            return [row[0] for row in rows]

        return self._guard(_keys, context="keys")

    def used_bytes(self) -> int:
        def _used() -> int:
            row = self._connection.execute(
                "SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0) FROM local_storage"
            ).fetchone()
            return int(row[0])

        return self._guard(_used, context="used_bytes")

    def _check_quota(self, key: str, value: str) -> None:
        row = self._connection.execute(
            """
            SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0)
            FROM local_storage
            WHERE key <> ?
            """,
            (key,),
        ).fetchone()
        projected = int(row[0]) + _entry_size(key, value)
        if self._quota_bytes is not None and projected > self._quota_bytes:
            raise StorageQuotaExceededError(
                f"Local storage quota exceeded: {projected} > {self._quota_bytes} bytes (key={key})"
            )

    @staticmethod
    def _guard(operation: Callable[[], _T], *, context: str) -> _T:
        try:
            return _run_with_locked_retry(operation, context=f"local_storage.{context}")
        except sqlite3.Error as exc:
            raise StorageError(f"Local storage {context} failed: {exc}") from exc
