from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Callable

from produce_sync.core.errors import StorageError
from produce_sync.core.metrics import metrics_registry
from produce_sync.core.operational_logging import log_operational_error
from produce_sync.domain.models import QueuedOrder, new_uuid, now_utc
from produce_sync.domain.ports import KeyValueStorePort

logger = logging.getLogger(__name__)

QUEUE_NAMESPACE = "queue_pedidos_"
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class OfflineOrderQueue:
    """Durable queue of purchase orders that have not reached the remote store yet.

    Entries live under ``namespace + order id`` in the key/value store, so
    removal never needs a scan. Replay order comes from the stored
    ``created_at``, oldest first.

    Storage failures are logged and treated as "no effect": a failed enqueue
    records nothing, a failed read yields no entries.
    """

    def __init__(
        self,
        storage: KeyValueStorePort,
        *,
        namespace: str = QUEUE_NAMESPACE,
        clock: Callable[[], datetime] = now_utc,
        id_factory: Callable[[], str] = new_uuid,
    ) -> None:
        if not namespace:
            raise ValueError("Queue namespace must not be empty")
        self._storage = storage
        self._namespace = namespace
        self._clock = clock
        self._id_factory = id_factory
        self._index: set[str] | None = None

    @property
    def namespace(self) -> str:
        return self._namespace

    def enqueue(self, order: QueuedOrder) -> QueuedOrder | None:
        entry = order.with_identity(order_id=self._id_factory(), created_at=self._clock())
        payload = json.dumps(entry.to_dict(), ensure_ascii=False)
        try:
            self._storage.set(self._key(entry.id), payload)
        except StorageError as exc:
            log_operational_error(
                "Offline queue persist failed; order not recorded",
                exc=exc,
                extra={"order_id": entry.id, "namespace": self._namespace},
            )
            return None

        if self._index is not None:
            self._index.add(entry.id)
        metrics_registry.increment("queue.enqueued")
        logger.info("Order queued offline id=%s items=%s", entry.id, len(entry.items))
        return entry

    def list_pending(self) -> list[QueuedOrder]:
        keys = self._scan_keys()
        if keys is None:
            return []
        entries = [entry for entry in (self._read(key) for key in keys) if entry is not None]
        entries.sort(key=lambda entry: (entry.created_at or _OLDEST, entry.id))
        return entries

    def get(self, order_id: str) -> QueuedOrder | None:
        return self._read(self._key(order_id))

    def remove(self, order_id: str) -> bool:
        try:
            removed = self._storage.remove(self._key(order_id))
        except StorageError as exc:
            log_operational_error(
                "Offline queue remove failed",
                exc=exc,
                extra={"order_id": order_id, "namespace": self._namespace},
            )
            return False

        if self._index is not None:
            self._index.discard(order_id)
        if removed:
            metrics_registry.increment("queue.removed")
            logger.info("Order removed from offline queue id=%s", order_id)
        return removed

    def count_pending(self) -> int:
        """Number of queued entries, for badges. Scans storage only on the first call."""
        if self._index is None:
            return self.refresh_index()
        return len(self._index)

    def refresh_index(self) -> int:
        keys = self._scan_keys()
        if keys is None:
            self._index = None
            return 0
        self._index = {key[len(self._namespace):] for key in keys}
        return len(self._index)

    def _key(self, order_id: str) -> str:
        return f"{self._namespace}{order_id}"

    def _scan_keys(self) -> list[str] | None:
        try:
            keys = self._storage.keys(self._namespace)
        except StorageError as exc:
            log_operational_error(
                "Offline queue scan failed",
                exc=exc,
                extra={"namespace": self._namespace},
            )
            return None
        self._index = {key[len(self._namespace):] for key in keys}
        return keys

    def _read(self, key: str) -> QueuedOrder | None:
        try:
            raw = self._storage.get(key)
        except StorageError as exc:
            log_operational_error("Offline queue read failed", exc=exc, extra={"key": key})
            return None
        if raw is None:
            return None
        try:
            return QueuedOrder.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            log_operational_error("Unreadable offline queue entry skipped", exc=exc, extra={"key": key})
            return None
