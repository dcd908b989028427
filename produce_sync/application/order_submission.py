from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from produce_sync.application.notifications import (
    ORDER_NOT_SAVED,
    ORDER_SAVED_AFTER_FAILURE,
    ORDER_SAVED_OFFLINE,
    ORDER_SENT,
    ORDER_WITHOUT_ITEMS,
    ORDERS_REPLAYED,
    send_notification,
)
from produce_sync.application.offline_queue import OfflineOrderQueue
from produce_sync.core.errors import ReplayIncompleteError
from produce_sync.core.metrics import metrics_registry
from produce_sync.core.operational_logging import log_operational_error
from produce_sync.domain.models import OrderItem, QueuedOrder, new_uuid, now_utc
from produce_sync.domain.ports import NotifierPort, RemoteOrdersPort
from produce_sync.domain.sync_models import NotificationLevel, ReplayResult, SubmissionResult, SyncTask

logger = logging.getLogger(__name__)

PURCHASE_ORDERS_TASK_ID = "purchase-orders"
PURCHASE_ORDERS_TASK_NAME = "Pedidos de compra"


class OrderSubmissionService:
    """Submits purchase orders online when possible and queues them otherwise.

    ``submit`` never raises for remote or storage trouble: an online write that
    fails falls back to the offline queue. ``replay_pending`` is the sync task
    that drains the queue later.
    """

    def __init__(
        self,
        queue: OfflineOrderQueue,
        remote: RemoteOrdersPort | None,
        *,
        is_online: Callable[[], bool],
        notifier: NotifierPort | None = None,
        clock: Callable[[], datetime] = now_utc,
        id_factory: Callable[[], str] = new_uuid,
    ) -> None:
        self._queue = queue
        self._remote = remote
        self._is_online = is_online
        self._notifier = notifier
        self._clock = clock
        self._id_factory = id_factory
        self._replaying = False

    @property
    def queue(self) -> OfflineOrderQueue:
        return self._queue

    async def submit(
        self,
        items: Sequence[OrderItem],
        *,
        supplier_id: str | None = None,
        notes: str | None = None,
    ) -> SubmissionResult:
        if not items:
            send_notification(self._notifier, "error", ORDER_WITHOUT_ITEMS)
            return SubmissionResult(success=False, offline=not self._is_online(), order_id="")

        order = QueuedOrder(items=tuple(items), supplier_id=supplier_id, notes=notes).with_identity(
            order_id=self._id_factory(),
            created_at=self._clock(),
        )

        if not self._is_online() or self._remote is None:
            return self._queue_locally(order, "success", ORDER_SAVED_OFFLINE)

        try:
            await self._remote.create_order(order)
        except Exception as exc:  # noqa: BLE001
            log_operational_error(
                "Online order write failed; falling back to offline queue",
                exc=exc,
                extra={"order_id": order.id},
            )
            return self._queue_locally(order, "warning", ORDER_SAVED_AFTER_FAILURE)

        metrics_registry.increment("orders.delivered_online")
        logger.info("Order delivered online id=%s", order.id)
        send_notification(self._notifier, "success", ORDER_SENT)
        return SubmissionResult(success=True, offline=False, order_id=order.id)

    async def replay_pending(self) -> ReplayResult:
        """Deliver queued orders oldest first, isolating failures per entry.

        Raises ``ReplayIncompleteError`` after the pass when some entries are
        still queued, so the sync cycle records the task as failed.
        """
        if self._replaying:
            logger.info("Order replay already running; skipped")
            return ReplayResult(skipped=True)

        self._replaying = True
        try:
            pending = self._queue.list_pending()
            delivered = 0
            completed = 0
            already_remote = 0
            failed = 0
            for entry in pending:
                if self._remote is None:
                    failed += 1
                    continue
                try:
                    existing = await self._remote.find_order_by_offline_id(entry.id)
                    if existing is None:
                        await self._remote.create_order(entry)
                    elif not existing.holds_all_items_of(entry):
                        logger.warning(
                            "Queued order has an incomplete header on server id=%s remote_id=%s items=%s/%s",
                            entry.id,
                            existing.remote_id,
                            existing.item_count,
                            len(entry.items),
                        )
                        await self._remote.add_order_items(existing.remote_id, entry)
                except Exception as exc:  # noqa: BLE001
                    failed += 1
                    log_operational_error(
                        "Queued order replay failed; entry kept",
                        exc=exc,
                        extra={"order_id": entry.id},
                    )
                    continue

                self._queue.remove(entry.id)
                if existing is None:
                    delivered += 1
                elif not existing.holds_all_items_of(entry):
                    completed += 1
                else:
                    already_remote += 1
                    logger.info("Queued order already on server id=%s remote_id=%s", entry.id, existing.remote_id)
        finally:
            self._replaying = False

        result = ReplayResult(
            pending=len(pending),
            delivered=delivered,
            completed=completed,
            already_remote=already_remote,
            failed=failed,
        )
        logger.info("Order replay finished %s", result.to_dict())
        metrics_registry.increment("orders.replayed", delivered + completed)

        synced = delivered + completed + already_remote
        if synced:
            send_notification(self._notifier, "success", ORDERS_REPLAYED, delivered=synced)
        if failed:
            if self._remote is None:
                logger.warning("Remote store not configured; %s queued order(s) waiting", failed)
            raise ReplayIncompleteError(failed=failed, delivered=synced)
        return result

    def discard(self, order_id: str) -> bool:
        removed = self._queue.remove(order_id)
        if removed:
            logger.info("Queued order discarded by user id=%s", order_id)
        return removed

    def as_sync_task(self, priority: int = 1) -> SyncTask:
        async def _replay() -> None:
            await self.replay_pending()

        return SyncTask(
            id=PURCHASE_ORDERS_TASK_ID,
            name=PURCHASE_ORDERS_TASK_NAME,
            action=_replay,
            priority=priority,
        )

    def _queue_locally(self, order: QueuedOrder, level: NotificationLevel, message: tuple) -> SubmissionResult:
        queued = self._queue.enqueue(order)
        if queued is None:
            send_notification(self._notifier, "error", ORDER_NOT_SAVED)
            return SubmissionResult(success=False, offline=True, order_id=order.id)
        send_notification(self._notifier, level, message)
        return SubmissionResult(success=True, offline=True, order_id=queued.id)
