from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtCore import QObject, Signal

from produce_sync.application.status_bus import SyncStatusBus
from produce_sync.domain.sync_models import SyncStatus

logger = logging.getLogger(__name__)


class SyncStatusBridge(QObject):
    """Re-emits status bus snapshots as a Qt signal so widgets can bind with ``connect``."""

    status_changed = Signal(object)

    def __init__(self, status_bus: SyncStatusBus, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._status_bus = status_bus
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self) -> SyncStatus:
        if self._unsubscribe is None:
            self._unsubscribe = self._status_bus.subscribe(self._forward)
        snapshot = self._status_bus.snapshot
        self.status_changed.emit(snapshot)
        return snapshot

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _forward(self, status: SyncStatus) -> None:
        self.status_changed.emit(status)
