from __future__ import annotations

import logging
from typing import Any

from produce_sync.core.errors import TransientExternalError
from produce_sync.core.observability import current_cycle_id, current_task_id

operational_logger = logging.getLogger("produce_sync.operational_error")


def log_operational_error(
    message: str,
    *,
    exc: BaseException,
    extra: dict[str, Any] | None = None,
) -> None:
    """Logs an absorbed failure to ``operational_errors.log``.

    Records raised inside a sync cycle are tagged with the cycle and task ids.
    ``retryable`` tells whether the next cycle can be expected to succeed.
    """
    metadata = dict(extra or {})
    cycle_id = current_cycle_id()
    task_id = metadata.pop("task_id", None) or current_task_id()
    if task_id:
        metadata["task_id"] = task_id
    metadata.setdefault("error_type", type(exc).__name__)
    metadata.setdefault("retryable", isinstance(exc, TransientExternalError))
    operational_logger.error(
        message,
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"cycle_id": cycle_id, "task_id": task_id, "extra": metadata},
    )
