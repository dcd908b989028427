from __future__ import annotations

import logging

from produce_sync.domain.sync_models import Notification

logger = logging.getLogger("produce_sync.notifications")

_LEVELS = {
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingNotifier:
    """Notification surface for headless runs: every toast becomes a log line."""

    def notify(self, notification: Notification) -> None:
        text = notification.title
        if notification.description:
            text = f"{text} - {notification.description}"
        logger.log(_LEVELS.get(notification.level, logging.INFO), "[%s] %s", notification.level, text)
