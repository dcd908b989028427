from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass
from functools import partial
from types import TracebackType
from typing import Callable

from PySide6.QtCore import QCoreApplication
from PySide6.QtWidgets import QApplication, QMessageBox

from produce_sync.bootstrap.container import AppContainer, build_container
from produce_sync.bootstrap.exception_handler import handle_global_exception, install_asyncio_exception_handler
from produce_sync.bootstrap.logging import configure_logging, install_exception_hook
from produce_sync.bootstrap.settings import SyncSettings, load_settings, resolve_log_dir
from produce_sync.infrastructure.connectivity_probe import SocketReachabilityProbe
from produce_sync.infrastructure.qt_connectivity import QtReachabilitySource
from produce_sync.infrastructure.remote_config import RemoteConfigStore
from produce_sync.ui.sync_status_bridge import SyncStatusBridge
from produce_sync.ui.sync_window import SyncMainWindow
from produce_sync.ui.toast_notifier import ToastNotifier
from produce_sync.ui.widgets.toast import ToastManager

logger = logging.getLogger("produce_sync.ui")

QT_PUMP_INTERVAL_SECONDS = 0.02
EXIT_UI_FAILED = 2

ContainerFactory = Callable[..., AppContainer]


def build_ui_error_message(incident_id: str) -> str:
    return f"Ocorreu um erro inesperado.\nID do incidente: {incident_id}"


def handle_ui_exception(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> str:
    incident_id = handle_global_exception(exc_type, exc_value, exc_traceback)
    if QApplication.instance() is None:
        return incident_id
    try:
        QMessageBox.critical(None, "Erro inesperado", build_ui_error_message(incident_id))
    except RuntimeError:
        logger.warning("Error dialog could not be shown incident_id=%s", incident_id, exc_info=True)
    return incident_id


@dataclass
class SyncUiSession:
    container: AppContainer
    window: SyncMainWindow
    toasts: ToastManager
    bridge: SyncStatusBridge
    reachability: QtReachabilitySource

    def refresh_pending_count(self) -> None:
        self.window.status_panel.set_pending_count(self.container.offline_queue.count_pending())

    def close(self) -> None:
        self.reachability.stop()
        self.bridge.detach()
        self.toasts.clear()


def create_sync_ui(
    container_factory: ContainerFactory = build_container,
    *,
    initially_online: bool = True,
    watch_reachability: bool = True,
) -> SyncUiSession:
    """Builds the window and binds it to the sync service.

    Toasts become the container's notifier, Qt reachability changes drive
    ``set_online`` and status bus snapshots repaint the status panel.
    """
    window = SyncMainWindow()
    toasts = ToastManager(window)
    container = container_factory(notifier=ToastNotifier(toasts), initially_online=initially_online)
    service = container.sync_service

    reachability = QtReachabilitySource(on_change=service.set_online, parent=window)
    if watch_reachability and reachability.start():
        current = reachability.current()
        if current is not None:
            service.set_online(current)

    bridge = SyncStatusBridge(service.status_bus, parent=window)
    session = SyncUiSession(
        container=container,
        window=window,
        toasts=toasts,
        bridge=bridge,
        reachability=reachability,
    )
    panel = window.status_panel
    bridge.status_changed.connect(panel.render)
    bridge.status_changed.connect(lambda _status: session.refresh_pending_count())
    panel.sync_requested.connect(service.trigger_sync)
    bridge.attach()
    return session


async def pump_qt_events(
    app: QCoreApplication,
    closed: asyncio.Event,
    *,
    interval_seconds: float = QT_PUMP_INTERVAL_SECONDS,
) -> None:
    """Runs Qt's event processing inside the asyncio loop until ``closed`` is set.

    Qt slots therefore execute with a running loop, so ``trigger_sync`` and the
    reconnect timer can schedule work.
    """
    while not closed.is_set():
        app.processEvents()
        await asyncio.sleep(interval_seconds)


def _probe_backend(settings: SyncSettings) -> bool:
    remote_config = RemoteConfigStore(settings.data_dir).load()
    return SocketReachabilityProbe(remote_config.url if remote_config else None).check()


async def _run_ui_async(settings: SyncSettings) -> int:
    app = QApplication.instance() or QApplication(sys.argv)
    install_asyncio_exception_handler(asyncio.get_running_loop())

    initially_online = await asyncio.to_thread(_probe_backend, settings)
    session = create_sync_ui(partial(build_container, settings), initially_online=initially_online)
    closed = asyncio.Event()
    app.lastWindowClosed.connect(closed.set)
    session.window.show()
    logger.info("Sync window opened online=%s", initially_online)
    try:
        await pump_qt_events(app, closed)
    finally:
        session.close()
        session.container.close()
    return 0


def run_ui(settings: SyncSettings | None = None) -> int:
    try:
        return asyncio.run(_run_ui_async(settings or load_settings()))
    except Exception:  # noqa: BLE001
        exc_type, exc_value, exc_traceback = sys.exc_info()
        if exc_type is not None and exc_value is not None:
            handle_ui_exception(exc_type, exc_value, exc_traceback)
        return EXIT_UI_FAILED


def main() -> int:
    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)
    return run_ui()


if __name__ == "__main__":
    raise SystemExit(main())
