from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from produce_sync.application.connectivity_monitor import ConnectivityMonitor
from produce_sync.application.retry_policy import RetryPolicy, TaskBackoff
from produce_sync.application.status_bus import StatusListener, SyncStatusBus
from produce_sync.application.sync_executor import SyncExecutor
from produce_sync.application.sync_registry import SyncTaskRegistry
from produce_sync.domain.models import now_utc
from produce_sync.domain.ports import NotifierPort
from produce_sync.domain.sync_models import CycleResult, SyncStatus, SyncTask

logger = logging.getLogger(__name__)


class BackgroundSyncService:
    """Process-wide sync coordinator built once at start-up and torn down on exit.

    Owns the registry, the status bus, the connectivity monitor and the
    executor, and wires the monitor's reconnect edge to an automatic cycle.
    """

    def __init__(
        self,
        *,
        notifier: NotifierPort | None = None,
        initially_online: bool = True,
        settle_delay_seconds: float = 1.0,
        task_timeout_seconds: float | None = None,
        retry_policy: RetryPolicy | None = None,
        clock: Callable = now_utc,
    ) -> None:
        self.registry = SyncTaskRegistry()
        self.status_bus = SyncStatusBus()
        self.monitor = ConnectivityMonitor(
            self.status_bus,
            self._on_connection_restored,
            notifier=notifier,
            initially_online=initially_online,
            settle_delay_seconds=settle_delay_seconds,
        )
        self.executor = SyncExecutor(
            self.registry,
            self.status_bus,
            is_online=lambda: self.monitor.is_online,
            notifier=notifier,
            backoff=TaskBackoff(retry_policy),
            task_timeout_seconds=task_timeout_seconds,
            clock=clock,
        )
        self._closed = False

    @property
    def status(self) -> SyncStatus:
        return self.status_bus.snapshot

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    def register(self, task: SyncTask) -> None:
        self.registry.register(task)

    def unregister(self, task_id: str) -> None:
        self.registry.unregister(task_id)

    @contextmanager
    def mounted(self, task: SyncTask) -> Iterator[SyncTask]:
        with self.registry.mounted(task) as registered:
            yield registered

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        return self.status_bus.subscribe(listener)

    def set_online(self, online: bool) -> None:
        self.monitor.set_online(online)

    def trigger_sync(self) -> asyncio.Task[CycleResult | None] | None:
        if self._closed:
            logger.info("Sync service closed; trigger ignored")
            return None
        return self.executor.trigger_sync()

    async def sync_now(self) -> CycleResult | None:
        """Run one manual cycle in the caller's task and wait for its result."""
        if self._closed or self.executor.in_flight:
            return None
        return await self.executor.run_cycle()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.monitor.close()
        self.status_bus.clear()
        self.registry.clear()
        logger.info("Background sync service shut down")

    def _on_connection_restored(self) -> None:
        if self._closed:
            return
        self.executor.trigger_sync(respect_backoff=True)
