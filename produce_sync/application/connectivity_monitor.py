from __future__ import annotations

import asyncio
import logging
from typing import Callable

from produce_sync.application.notifications import CONNECTION_RESTORED, WORKING_OFFLINE, send_notification
from produce_sync.application.status_bus import SyncStatusBus
from produce_sync.domain.ports import NotifierPort

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Turns the host's reachability signal into online/offline edges.

    ``set_online`` may be fed the same value repeatedly; only real transitions
    reach ``on_became_online`` / ``on_became_offline``. After coming back online
    the ``on_restored`` callback fires once the link has been stable for
    ``settle_delay_seconds``; going offline again before that cancels it.
    """

    def __init__(
        self,
        status_bus: SyncStatusBus,
        on_restored: Callable[[], object],
        *,
        notifier: NotifierPort | None = None,
        initially_online: bool = True,
        settle_delay_seconds: float = 1.0,
    ) -> None:
        self._status_bus = status_bus
        self._on_restored = on_restored
        self._notifier = notifier
        self._online = initially_online
        self._settle_delay_seconds = max(0.0, settle_delay_seconds)
        self._pending_restore: asyncio.TimerHandle | None = None
        self._status_bus.publish(is_online=initially_online)

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def restore_pending(self) -> bool:
        return self._pending_restore is not None

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        if online:
            self.on_became_online()
        else:
            self.on_became_offline()

    def on_became_online(self) -> None:
        self._online = True
        logger.info("Connectivity restored")
        self._status_bus.publish(is_online=True)
        send_notification(self._notifier, "success", CONNECTION_RESTORED)
        self._schedule_restore()

    def on_became_offline(self) -> None:
        self._online = False
        self._cancel_restore()
        logger.info("Connectivity lost; working offline")
        self._status_bus.publish(is_online=False)
        send_notification(self._notifier, "warning", WORKING_OFFLINE)

    def close(self) -> None:
        self._cancel_restore()

    def _schedule_restore(self) -> None:
        self._cancel_restore()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; sync after reconnect not scheduled")
            return
        self._pending_restore = loop.call_later(self._settle_delay_seconds, self._fire_restore)

    def _cancel_restore(self) -> None:
        if self._pending_restore is not None:
            self._pending_restore.cancel()
            self._pending_restore = None

    def _fire_restore(self) -> None:
        self._pending_restore = None
        if not self._online:
            return
        try:
            self._on_restored()
        except Exception:  # noqa: BLE001
            logger.exception("Sync trigger after reconnect failed")
