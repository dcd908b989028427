from __future__ import annotations

import logging
import sqlite3

import pytest

from produce_sync.infrastructure.migrations import MigrationRunner, run_migrations


def _tables(conn: sqlite3.Connection) -> set[str]:
    return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}


def test_apply_all_is_idempotent() -> None:
    conn = sqlite3.connect(":memory:")

    assert run_migrations(conn) == [1]
    assert run_migrations(conn) == []
    assert "local_storage" in _tables(conn)
    assert conn.execute("PRAGMA user_version").fetchone()[0] == 1


def test_status_and_rollback() -> None:
    conn = sqlite3.connect(":memory:")
    runner = MigrationRunner(conn)
    runner.apply_all()

    assert runner.status() == [{"version": 1, "name": "local_storage", "applied": True}]
    assert runner.rollback() == [1]
    assert "local_storage" not in _tables(conn)
    assert runner.status()[0]["applied"] is False
    assert conn.execute("PRAGMA user_version").fetchone()[0] == 0
    assert runner.rollback() == []


def test_custom_directory_orders_by_version(tmp_path) -> None:
    (tmp_path / "002_second.up.sql").write_text("CREATE TABLE second (id INTEGER);", encoding="utf-8")
    (tmp_path / "002_second.down.sql").write_text("DROP TABLE second;", encoding="utf-8")
    (tmp_path / "001_first.up.sql").write_text("CREATE TABLE first (id INTEGER);", encoding="utf-8")
    (tmp_path / "001_first.down.sql").write_text("DROP TABLE first;", encoding="utf-8")
    conn = sqlite3.connect(":memory:")

    runner = MigrationRunner(conn, tmp_path)

    assert [migration.name for migration in runner.migrations] == ["first", "second"]
    assert runner.apply_all() == [1, 2]
    assert runner.rollback(steps=1) == [2]
    assert _tables(conn) >= {"first"}
    assert "second" not in _tables(conn)


def test_missing_down_file_is_reported(tmp_path) -> None:
    (tmp_path / "001_only_up.up.sql").write_text("SELECT 1;", encoding="utf-8")

    with pytest.raises(FileNotFoundError):
        MigrationRunner(sqlite3.connect(":memory:"), tmp_path)


def test_migration_edited_after_apply_is_reported(tmp_path, caplog) -> None:
    (tmp_path / "001_first.up.sql").write_text("CREATE TABLE first (id INTEGER);", encoding="utf-8")
    (tmp_path / "001_first.down.sql").write_text("DROP TABLE first;", encoding="utf-8")
    conn = sqlite3.connect(":memory:")
    MigrationRunner(conn, tmp_path).apply_all()

    (tmp_path / "001_first.up.sql").write_text("CREATE TABLE first (id INTEGER, name TEXT);", encoding="utf-8")
    with caplog.at_level(logging.WARNING, logger="produce_sync.infrastructure.migrations"):
        assert MigrationRunner(conn, tmp_path).apply_all() == []

    assert "Migration 001_first changed after it was applied" in caplog.text


def test_unexpected_file_names_are_skipped(tmp_path) -> None:
    (tmp_path / "001_first.up.sql").write_text("CREATE TABLE first (id INTEGER);", encoding="utf-8")
    (tmp_path / "001_first.down.sql").write_text("DROP TABLE first;", encoding="utf-8")
    (tmp_path / "draft-notes.up.sql").write_text("SELECT 1;", encoding="utf-8")

    runner = MigrationRunner(sqlite3.connect(":memory:"), tmp_path)

    assert [migration.version for migration in runner.migrations] == [1]
