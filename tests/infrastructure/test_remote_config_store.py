from __future__ import annotations

import json

from produce_sync.domain.models import RemoteConfig
from produce_sync.infrastructure.remote_config import CONFIG_FILENAME, RemoteConfigStore


def test_missing_file_loads_none(tmp_path) -> None:
    assert RemoteConfigStore(tmp_path).load() is None


def test_save_then_load(tmp_path) -> None:
    store = RemoteConfigStore(tmp_path / "cfg")

    saved = store.save(RemoteConfig(url=" https://backend.example.test ", anon_key="anon "))
    loaded = store.load()

    assert saved.device_id
    assert loaded == RemoteConfig(url="https://backend.example.test", anon_key="anon", device_id=saved.device_id)
    assert store.config_path == tmp_path / "cfg" / CONFIG_FILENAME


def test_device_id_is_generated_once_and_persisted(tmp_path) -> None:
    path = tmp_path / CONFIG_FILENAME
    path.write_text(json.dumps({"backend_url": "https://b.test", "anon_key": "k"}), encoding="utf-8")
    store = RemoteConfigStore(tmp_path)

    first = store.load()
    second = store.load()

    assert first.device_id
    assert first.device_id == second.device_id
    assert json.loads(path.read_text(encoding="utf-8"))["device_id"] == first.device_id


def test_incomplete_or_corrupt_config_loads_none(tmp_path) -> None:
    path = tmp_path / CONFIG_FILENAME
    path.write_text(json.dumps({"backend_url": "https://b.test", "anon_key": ""}), encoding="utf-8")
    assert RemoteConfigStore(tmp_path).load() is None

    path.write_text("{broken", encoding="utf-8")
    assert RemoteConfigStore(tmp_path).load() is None

    path.write_text("[1, 2]", encoding="utf-8")
    assert RemoteConfigStore(tmp_path).load() is None
