from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol

from produce_sync.domain.models import QueuedOrder, RemoteConfig, RemoteOrderRef
from produce_sync.domain.sync_models import Notification


class KeyValueStorePort(Protocol):
    """Durable string key/value storage. Failures raise ``StorageError``."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> bool:
        ...

    def keys(self, prefix: str = "") -> list[str]:
        ...


class RemoteOrdersPort(Protocol):
    """Purchase-order writes on the server. Failures raise ``RemoteWriteError`` subclasses."""

    async def find_order_by_offline_id(self, offline_id: str) -> RemoteOrderRef | None:
        ...

    async def create_order(self, order: QueuedOrder) -> str:
        ...

    async def add_order_items(self, remote_id: str, order: QueuedOrder) -> None:
        ...


class NotifierPort(Protocol):
    def notify(self, notification: Notification) -> None:
        ...


class ReachabilityProbePort(Protocol):
    def check(self, *, timeout_seconds: float = 3.0) -> bool:
        ...


class RemoteConfigStorePort(Protocol):
    def load(self) -> RemoteConfig | None:
        ...

    def save(self, config: RemoteConfig) -> RemoteConfig:
        ...


class PendingOrdersReportPort(Protocol):
    def build_report(self, orders: Iterable[QueuedOrder], destination: Path) -> Path:
        ...
