from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from produce_sync.application.background_sync import BackgroundSyncService
from produce_sync.application.offline_cache import OfflineCache
from produce_sync.application.offline_queue import OfflineOrderQueue
from produce_sync.application.order_submission import OrderSubmissionService
from produce_sync.application.receiving_drafts import ReceivingDraftStore
from produce_sync.application.retry_policy import RetryPolicy
from produce_sync.bootstrap.settings import SyncSettings, load_settings
from produce_sync.core.metrics import metrics_registry
from produce_sync.domain.ports import NotifierPort, RemoteOrdersPort
from produce_sync.infrastructure.db import get_connection
from produce_sync.infrastructure.local_storage_sqlite import SqliteKeyValueStore
from produce_sync.infrastructure.logging_notifier import LoggingNotifier
from produce_sync.infrastructure.migrations import run_migrations
from produce_sync.infrastructure.pdf.pending_orders_pdf import ReportlabPendingOrdersReport
from produce_sync.infrastructure.postgrest_gateway import PostgrestOrdersGateway
from produce_sync.infrastructure.remote_config import RemoteConfigStore

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[Path], sqlite3.Connection]


@dataclass
class AppContainer:
    settings: SyncSettings
    connection: sqlite3.Connection
    storage: SqliteKeyValueStore
    config_store: RemoteConfigStore
    remote: RemoteOrdersPort | None
    notifier: NotifierPort
    sync_service: BackgroundSyncService
    offline_queue: OfflineOrderQueue
    order_submission: OrderSubmissionService
    offline_cache: OfflineCache
    pending_orders_report: ReportlabPendingOrdersReport

    def receiving_drafts(self, order_id: str) -> ReceivingDraftStore:
        return ReceivingDraftStore(self.storage, order_id, debounce_seconds=self.settings.debounce_seconds)

    def close(self) -> None:
        self.sync_service.shutdown()
        close_remote = getattr(self.remote, "close", None)
        if callable(close_remote):
            close_remote()
        self.connection.close()
        logger.info("Container closed", extra={"extra": {"metrics": metrics_registry.snapshot()}})


def build_container(
    settings: SyncSettings | None = None,
    *,
    connection_factory: ConnectionFactory = get_connection,
    notifier: NotifierPort | None = None,
    config_store: RemoteConfigStore | None = None,
    remote: RemoteOrdersPort | None = None,
    initially_online: bool = True,
) -> AppContainer:
    settings = settings or load_settings()
    connection = connection_factory(settings.db_path)
    run_migrations(connection)

    storage = SqliteKeyValueStore(connection, quota_bytes=settings.storage_quota_bytes)
    config_store = config_store or RemoteConfigStore(settings.data_dir)
    notifier = notifier or LoggingNotifier()

    if remote is None:
        remote_config = config_store.load()
        if remote_config is not None:
            remote = PostgrestOrdersGateway(remote_config)
        else:
            logger.warning("Backend not configured; orders will stay queued locally")

    sync_service = BackgroundSyncService(
        notifier=notifier,
        initially_online=initially_online,
        settle_delay_seconds=settings.settle_delay_seconds,
        task_timeout_seconds=settings.task_timeout_seconds,
        retry_policy=RetryPolicy(
            initial_backoff_seconds=settings.retry_initial_seconds,
            backoff_multiplier=settings.retry_multiplier,
            max_backoff_seconds=settings.retry_max_seconds,
        ),
    )
    offline_queue = OfflineOrderQueue(storage)
    order_submission = OrderSubmissionService(
        offline_queue,
        remote,
        is_online=lambda: sync_service.is_online,
        notifier=notifier,
    )
    sync_service.register(order_submission.as_sync_task())

    return AppContainer(
        settings=settings,
        connection=connection,
        storage=storage,
        config_store=config_store,
        remote=remote,
        notifier=notifier,
        sync_service=sync_service,
        offline_queue=offline_queue,
        order_submission=order_submission,
        offline_cache=OfflineCache(
            storage,
            is_online=lambda: sync_service.is_online,
            ttl_minutes=settings.cache_ttl_minutes,
        ),
        pending_orders_report=ReportlabPendingOrdersReport(),
    )
