from __future__ import annotations

import inspect
import logging
from collections.abc import Callable

from produce_sync.domain.sync_models import Notification

logger = logging.getLogger(__name__)


def _accepts_keyword(method: Callable[..., object], name: str) -> bool:
    """Whether a toast method takes ``name`` (directly or through ``**kwargs``)."""
    try:
        signature = inspect.signature(method)
    except (TypeError, ValueError):
        return False

    parameters = signature.parameters.values()
    if any(parameter.name == name for parameter in parameters):
        return True
    return any(parameter.kind == inspect.Parameter.VAR_KEYWORD for parameter in parameters)


def safe_toast_call(
    toast: object,
    method_name: str,
    message: str,
    *,
    title: str | None = None,
    duration_ms: int | None = None,
) -> bool:
    method = getattr(toast, method_name, None)
    if not callable(method):
        logger.error("TOAST_RENDER_FAILED method=%s reason=missing_method", method_name)
        return False

    kwargs: dict[str, object] = {}
    if title is not None:
        kwargs["title"] = title
    if duration_ms is not None and _accepts_keyword(method, "duration_ms"):
        kwargs["duration_ms"] = duration_ms

    try:
        method(message, **kwargs)
    except Exception:
        logger.exception("TOAST_RENDER_FAILED method=%s", method_name)
        return False
    return True


class ToastNotifier:
    """Routes sync notifications to a toast widget exposing ``success/warning/error``."""

    def __init__(self, toast: object) -> None:
        self._toast = toast

    def notify(self, notification: Notification) -> None:
        if notification.description:
            message, title = notification.description, notification.title
        else:
            message, title = notification.title, None
        safe_toast_call(
            self._toast,
            notification.level,
            message,
            title=title,
            duration_ms=notification.duration_ms,
        )
