from __future__ import annotations

import sqlite3

from produce_sync.infrastructure.db import default_db_path, get_connection


def test_connection_creates_parent_and_uses_wal(tmp_path) -> None:
    db_path = tmp_path / "nested" / "data" / "produce.db"

    conn = get_connection(db_path, busy_timeout_ms=1500)
    try:
        assert db_path.parent.is_dir()
        assert conn.row_factory is sqlite3.Row
        assert conn.execute("PRAGMA journal_mode").fetchone()[0].lower() == "wal"
        assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 1500
    finally:
        conn.close()


def test_default_path_follows_data_dir_env(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("PRODUCE_SYNC_DATA_DIR", str(tmp_path))

    assert default_db_path() == tmp_path / "produce_sync.db"
