from __future__ import annotations

import hashlib
import logging
import re
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from produce_sync.domain.models import now_utc, to_iso

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"
_UP_FILE = re.compile(r"^(?P<version>\d+)_(?P<name>\w+)\.up\.sql$")

_HISTORY_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    checksum TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    up_path: Path
    down_path: Path

    def up_script(self) -> str:
        return self.up_path.read_text(encoding="utf-8")

    def down_script(self) -> str:
        return self.down_path.read_text(encoding="utf-8")

    def checksum(self) -> str:
        return hashlib.sha256(self.up_script().encode("utf-8")).hexdigest()


def discover_migrations(directory: Path) -> list[Migration]:
    """Pairs every ``NNN_name.up.sql`` with its ``.down.sql``, ordered by version."""
    found: list[Migration] = []
    for up_path in directory.glob("*.up.sql"):
        match = _UP_FILE.match(up_path.name)
        if match is None:
            logger.warning("Ignoring migration file with unexpected name: %s", up_path.name)
            continue
        down_path = up_path.with_name(up_path.name.replace(".up.sql", ".down.sql"))
        if not down_path.exists():
            raise FileNotFoundError(f"Missing down migration for {up_path.name}: {down_path}")
        found.append(Migration(int(match["version"]), match["name"], up_path, down_path))
    return sorted(found, key=lambda migration: migration.version)


class MigrationRunner:
    """Keeps the local SQLite schema (the ``local_storage`` table and friends) at the latest version.

    Applied versions live in ``schema_migrations``; ``PRAGMA user_version``
    mirrors the highest one so external tools can read it cheaply.
    """

    def __init__(self, connection: sqlite3.Connection, migrations_dir: Path | None = None) -> None:
        self._conn = connection
        self.migrations = discover_migrations(migrations_dir or MIGRATIONS_DIR)

    def apply_all(self) -> list[int]:
        history = self._history()
        self._warn_on_edited(history)
        pending = [migration for migration in self.migrations if migration.version not in history]
        for migration in pending:
            with self._conn:
                script = migration.up_script()
                if script.strip():
                    self._conn.executescript(script)
                self._conn.execute(
                    "INSERT INTO schema_migrations (version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                    (migration.version, migration.name, migration.checksum(), to_iso(now_utc())),
                )
                self._set_user_version()
        applied = [migration.version for migration in pending]
        if applied:
            logger.info("Local schema migrated versions=%s", applied)
        return applied

    def rollback(self, steps: int = 1) -> list[int]:
        history = self._history()
        by_version = {migration.version: migration for migration in self.migrations}
        targets = sorted(history, reverse=True)[: max(0, steps)]
        for version in targets:
            with self._conn:
                script = by_version[version].down_script()
                if script.strip():
                    self._conn.executescript(script)
                self._conn.execute("DELETE FROM schema_migrations WHERE version = ?", (version,))
                self._set_user_version()
        if targets:
            logger.info("Local schema rolled back versions=%s", targets)
        return targets

    def status(self) -> list[dict[str, object]]:
        history = self._history()
        return [
            {"version": migration.version, "name": migration.name, "applied": migration.version in history}
            for migration in self.migrations
        ]

    def _history(self) -> dict[int, str]:
        with self._conn:
            self._conn.execute(_HISTORY_DDL)
        return {version: checksum for version, checksum in self._conn.execute("SELECT version, checksum FROM schema_migrations")}

    def _warn_on_edited(self, history: dict[int, str]) -> None:
        for migration in self.migrations:
            stored = history.get(migration.version)
            if stored is not None and stored != migration.checksum():
                logger.warning("Migration %03d_%s changed after it was applied", migration.version, migration.name)

    def _set_user_version(self) -> None:
        (latest,) = self._conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations").fetchone()
        self._conn.execute(f"PRAGMA user_version = {int(latest)}")


def run_migrations(connection: sqlite3.Connection) -> list[int]:
    return MigrationRunner(connection).apply_all()
