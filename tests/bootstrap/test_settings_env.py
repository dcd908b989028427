from __future__ import annotations

import pytest

from produce_sync.bootstrap import settings as settings_module
from produce_sync.bootstrap.settings import DB_FILENAME, load_settings, resolve_data_dir, resolve_log_dir

_ENV_NAMES = (
    "PRODUCE_SYNC_DATA_DIR",
    "PRODUCE_SYNC_DB_PATH",
    "PRODUCE_SYNC_TASK_TIMEOUT_SECONDS",
    "PRODUCE_SYNC_STORAGE_QUOTA_BYTES",
    "PRODUCE_SYNC_DEBOUNCE_MS",
    "PRODUCE_SYNC_SETTLE_DELAY_SECONDS",
    "PRODUCE_SYNC_CACHE_TTL_MINUTES",
    "PRODUCE_SYNC_RETRY_INITIAL_SECONDS",
    "PRODUCE_SYNC_RETRY_MULTIPLIER",
    "PRODUCE_SYNC_RETRY_MAX_SECONDS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PRODUCE_SYNC_DATA_DIR", str(tmp_path))


def test_defaults(tmp_path) -> None:
    settings = load_settings()

    assert settings.data_dir == tmp_path
    assert settings.db_path == tmp_path / DB_FILENAME
    assert settings.settle_delay_seconds == 1.0
    assert settings.debounce_seconds == 0.5
    assert settings.cache_ttl_minutes == 60
    assert settings.task_timeout_seconds == 60.0
    assert settings.storage_quota_bytes == 5 * 1024 * 1024


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("PRODUCE_SYNC_DB_PATH", str(tmp_path / "other.db"))
    monkeypatch.setenv("PRODUCE_SYNC_DEBOUNCE_MS", "250")
    monkeypatch.setenv("PRODUCE_SYNC_TASK_TIMEOUT_SECONDS", "0")
    monkeypatch.setenv("PRODUCE_SYNC_STORAGE_QUOTA_BYTES", "0")
    monkeypatch.setenv("PRODUCE_SYNC_RETRY_MAX_SECONDS", "30")

    settings = load_settings()

    assert settings.db_path == tmp_path / "other.db"
    assert settings.debounce_seconds == 0.25
    assert settings.task_timeout_seconds is None
    assert settings.storage_quota_bytes is None
    assert settings.retry_max_seconds == 30.0


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("PRODUCE_SYNC_DEBOUNCE_MS", "soon")
    monkeypatch.setenv("PRODUCE_SYNC_SETTLE_DELAY_SECONDS", "-3")
    monkeypatch.setenv("PRODUCE_SYNC_RETRY_MULTIPLIER", "x2")

    settings = load_settings()

    assert settings.debounce_ms == 500
    assert settings.settle_delay_seconds == 1.0
    assert settings.retry_multiplier == 2.0


def test_data_dir_falls_back_to_local_appdata(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("PRODUCE_SYNC_DATA_DIR")
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path))

    assert resolve_data_dir() == tmp_path / settings_module.APP_DIR_NAME


def test_log_dir_env_is_used_when_writable(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("PRODUCE_SYNC_LOG_DIR", str(tmp_path / "logs"))

    assert resolve_log_dir() == tmp_path / "logs"
    assert list((tmp_path / "logs").iterdir()) == []
