from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime
from time import perf_counter
from typing import Callable

from produce_sync.application.notifications import (
    SYNC_COMPLETE,
    SYNC_NEEDS_CONNECTION,
    SYNC_PARTIAL,
    send_notification,
)
from produce_sync.application.retry_policy import TaskBackoff
from produce_sync.application.status_bus import SyncStatusBus
from produce_sync.application.sync_registry import SyncTaskRegistry
from produce_sync.core.metrics import metrics_registry
from produce_sync.core.observability import SyncCycleScope
from produce_sync.core.operational_logging import log_operational_error
from produce_sync.domain.models import now_utc
from produce_sync.domain.ports import NotifierPort
from produce_sync.domain.sync_models import CycleResult, SyncTask

logger = logging.getLogger(__name__)


class SyncExecutor:
    """Drains the task registry, one cycle at a time, in priority order.

    Tasks run strictly one after another. A failing task is counted and logged
    and the cycle moves on; losing connectivity stops the cycle before the next
    task starts. Callers only learn about progress through the status bus.
    """

    def __init__(
        self,
        registry: SyncTaskRegistry,
        status_bus: SyncStatusBus,
        *,
        is_online: Callable[[], bool],
        notifier: NotifierPort | None = None,
        backoff: TaskBackoff | None = None,
        task_timeout_seconds: float | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._registry = registry
        self._status_bus = status_bus
        self._is_online = is_online
        self._notifier = notifier
        self._backoff = backoff or TaskBackoff()
        self._task_timeout_seconds = task_timeout_seconds
        self._clock = clock
        self._in_flight = False
        self._current: asyncio.Task[CycleResult | None] | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight or (self._current is not None and not self._current.done())

    @property
    def backoff(self) -> TaskBackoff:
        return self._backoff

    def trigger_sync(self, *, respect_backoff: bool = False) -> asyncio.Task[CycleResult | None] | None:
        """Schedule a cycle on the running loop. Never raises.

        Returns the scheduled task, or ``None`` when the request was dropped
        because a cycle is already running, the device is offline, or there is
        no running event loop.
        """
        if self.in_flight:
            logger.info("Sync already in progress; trigger dropped")
            return None
        if not self._is_online():
            logger.info("Sync requested while offline; waiting for connectivity")
            send_notification(self._notifier, "error", SYNC_NEEDS_CONNECTION)
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("trigger_sync called without a running event loop")
            return None

        cycle = loop.create_task(self.run_cycle(respect_backoff=respect_backoff), name="sync-cycle")
        cycle.add_done_callback(self._on_cycle_done)
        self._current = cycle
        return cycle

    async def run_cycle(self, *, respect_backoff: bool = False) -> CycleResult | None:
        if self._in_flight:
            return None
        if not self._is_online():
            return None

        tasks = self._registry.list_sorted_by_priority()
        self._backoff.forget_missing({task.id for task in tasks})
        if not tasks:
            return CycleResult()

        runnable, deferred = self._split_by_backoff(tasks, respect_backoff)
        if not runnable:
            return CycleResult(deferred=len(deferred))

        self._in_flight = True
        total = len(runnable)
        completed = 0
        errors = 0
        interrupted = False
        started = perf_counter()

        with SyncCycleScope("reconnect" if respect_backoff else "manual") as scope:
            scope.event(
                logger,
                "sync_cycle_started",
                {"tasks": [task.id for task in runnable], "deferred": [task.id for task in deferred]},
            )
            try:
                self._status_bus.publish(
                    is_syncing=True,
                    pending_task_count=total,
                    current_task_name=runnable[0].name,
                    sync_progress_percent=0,
                )
                for task in runnable:
                    if not self._is_online():
                        interrupted = True
                        logger.warning(
                            "Connectivity lost during sync; %s task(s) left for the next cycle",
                            total - completed - errors,
                        )
                        break

                    self._status_bus.publish(
                        current_task_name=task.name,
                        sync_progress_percent=completed * 100 // total,
                    )
                    with scope.task(task.id):
                        try:
                            await self._run_action(task)
                        except Exception as exc:  # noqa: BLE001
                            errors += 1
                            retry_at = self._backoff.record_failure(task.id, self._clock())
                            metrics_registry.increment("sync.tasks_failed")
                            log_operational_error(
                                f"Sync task failed: {task.id}",
                                exc=exc,
                                extra={"task_name": task.name, "retry_at": retry_at.isoformat()},
                            )
                        else:
                            completed += 1
                            self._backoff.record_success(task.id)
                            metrics_registry.increment("sync.tasks_completed")
            finally:
                self._in_flight = False
                self._status_bus.publish(
                    is_syncing=False,
                    last_sync_at=self._clock(),
                    pending_task_count=0,
                    current_task_name=None,
                    sync_progress_percent=100,
                )
                metrics_registry.increment("sync.cycles")
                metrics_registry.record_timing("latency.sync_cycle_ms", (perf_counter() - started) * 1000)

            result = CycleResult(
                total=total,
                completed=completed,
                errors=errors,
                deferred=len(deferred),
                interrupted=interrupted,
                cycle_id=scope.cycle_id,
            )
            scope.event(logger, "sync_cycle_finished", result.to_dict())

        self._notify_summary(completed, errors)
        return result

    def _split_by_backoff(self, tasks: list[SyncTask], respect_backoff: bool) -> tuple[list[SyncTask], list[SyncTask]]:
        if not respect_backoff:
            return tasks, []
        now = self._clock()
        runnable: list[SyncTask] = []
        deferred: list[SyncTask] = []
        for task in tasks:
            if self._backoff.is_ready(task.id, now):
                runnable.append(task)
                continue
            deferred.append(task)
            metrics_registry.increment("sync.tasks_deferred")
            logger.info(
                "Sync task deferred id=%s failures=%s retry_at=%s",
                task.id,
                self._backoff.failures(task.id),
                self._backoff.retry_at(task.id),
            )
        return runnable, deferred

    async def _run_action(self, task: SyncTask) -> None:
        outcome = task.action()
        if not inspect.isawaitable(outcome):
            return
        if self._task_timeout_seconds is None:
            await outcome
            return
        await asyncio.wait_for(outcome, timeout=self._task_timeout_seconds)

    def _notify_summary(self, completed: int, errors: int) -> None:
        if errors > 0:
            send_notification(self._notifier, "warning", SYNC_PARTIAL, completed=completed, errors=errors)
        elif completed > 0:
            send_notification(self._notifier, "success", SYNC_COMPLETE, completed=completed)

    def _on_cycle_done(self, cycle: asyncio.Task[CycleResult | None]) -> None:
        if cycle is self._current:
            self._current = None
        if cycle.cancelled():
            logger.info("Sync cycle cancelled")
            return
        exc = cycle.exception()
        if exc is not None:
            log_operational_error("Sync cycle aborted unexpectedly", exc=exc)
