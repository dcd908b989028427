from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

from produce_sync.bootstrap.settings import resolve_data_dir
from produce_sync.domain.models import RemoteConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


class RemoteConfigStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_data_dir()
        self._config_path = self._base_dir / CONFIG_FILENAME

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> RemoteConfig | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Could not read %s: %s", self._config_path, exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("Ignoring malformed config at %s", self._config_path)
            return None
        url = str(payload.get("backend_url", "")).strip()
        anon_key = str(payload.get("anon_key", "")).strip()
        device_id = str(payload.get("device_id", "")).strip()
        if not device_id:
            device_id = self._generate_device_id()
            payload["device_id"] = device_id
            self._write_payload(payload)
        config = RemoteConfig(url=url, anon_key=anon_key, device_id=device_id)
        if not config.is_complete:
            return None
        return config

    def save(self, config: RemoteConfig) -> RemoteConfig:
        payload = {
            "backend_url": config.url.strip(),
            "anon_key": config.anon_key.strip(),
            "device_id": config.device_id or self._generate_device_id(),
        }
        self._write_payload(payload)
        return RemoteConfig(url=payload["backend_url"], anon_key=payload["anon_key"], device_id=payload["device_id"])

    def _write_payload(self, payload: dict[str, str]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return str(uuid.uuid4())
