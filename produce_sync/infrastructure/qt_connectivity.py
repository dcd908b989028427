from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtCore import QObject, Slot
from PySide6.QtNetwork import QNetworkInformation

logger = logging.getLogger(__name__)


def reachability_to_online(reachability: QNetworkInformation.Reachability) -> bool | None:
    """``None`` means Qt cannot tell; callers keep their last known state."""
    if reachability == QNetworkInformation.Reachability.Online:
        return True
    if reachability == QNetworkInformation.Reachability.Unknown:
        return None
    return False


class QtReachabilitySource(QObject):
    """Feeds Qt's network reachability changes into a callback (typically ``ConnectivityMonitor.set_online``)."""

    def __init__(self, on_change: Callable[[bool], None], parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._on_change = on_change
        self._info: QNetworkInformation | None = None

    @property
    def active(self) -> bool:
        return self._info is not None

    def start(self) -> bool:
        if self._info is not None:
            return True
        if not QNetworkInformation.loadDefaultBackend():
            logger.warning("No Qt network information backend available; reachability changes not observed")
            return False
        info = QNetworkInformation.instance()
        if info is None:
            return False
        info.reachabilityChanged.connect(self._handle_reachability)
        self._info = info
        logger.info("Qt reachability backend=%s", info.backendName())
        return True

    def current(self) -> bool | None:
        if self._info is None:
            return None
        return reachability_to_online(self._info.reachability())

    def stop(self) -> None:
        if self._info is None:
            return
        try:
            self._info.reachabilityChanged.disconnect(self._handle_reachability)
        except (RuntimeError, TypeError):
            logger.debug("Reachability signal already disconnected")
        self._info = None

    @Slot(QNetworkInformation.Reachability)
    def _handle_reachability(self, reachability: QNetworkInformation.Reachability) -> None:
        online = reachability_to_online(reachability)
        if online is None:
            return
        self._on_change(online)
