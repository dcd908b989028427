from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable

from produce_sync.domain.sync_models import SyncStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[SyncStatus], None]


class SyncStatusBus:
    """Holds the process-wide ``SyncStatus`` and fans every change out to listeners.

    Listeners receive immutable snapshots. A listener that raises is logged and
    skipped; it never stops delivery to the others nor reaches the publisher.
    """

    def __init__(self, initial: SyncStatus | None = None) -> None:
        self._status = initial or SyncStatus()
        self._listeners: list[StatusListener] = []

    @property
    def snapshot(self) -> SyncStatus:
        return self._status

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        if listener not in self._listeners:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            self.unsubscribe(listener)

        return _unsubscribe

    def unsubscribe(self, listener: StatusListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, **updates: Any) -> SyncStatus:
        self._status = replace(self._status, **updates)
        status = self._status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:  # noqa: BLE001
                logger.exception("STATUS_LISTENER_FAILED listener=%r", listener)
        return status

    def clear(self) -> None:
        self._listeners.clear()
