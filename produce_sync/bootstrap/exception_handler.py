from __future__ import annotations

import asyncio
import json
import logging
import traceback
import uuid
from types import TracebackType
from typing import Any

from produce_sync.bootstrap.logging import CRASH_LOG_NAME
from produce_sync.bootstrap.settings import resolve_log_dir
from produce_sync.core.observability import current_cycle_id
from produce_sync.domain.models import now_utc, to_iso


def generate_incident_id() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


def _append_crash_line(incident_id: str, cycle_id: str | None, exc_value: BaseException) -> None:
    """Writes a crash.log line directly when the logging system itself failed."""
    line = {
        "timestamp": to_iso(now_utc()),
        "level": "CRITICAL",
        "message": f"Unhandled exception. incident_id={incident_id}",
        "cycle_id": cycle_id,
        "incident_id": incident_id,
        "extra": {"error_type": type(exc_value).__name__, "error_message": str(exc_value)},
        "exc_info": "".join(traceback.format_exception(exc_value)),
    }
    log_dir = resolve_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    with (log_dir / CRASH_LOG_NAME).open("a", encoding="utf-8") as crash_file:
        crash_file.write(json.dumps(line, ensure_ascii=False) + "\n")


def handle_global_exception(
    exc_type: type[BaseException], exc_value: BaseException, exc_traceback: TracebackType | None
) -> str:
    incident_id = generate_incident_id()
    cycle_id = current_cycle_id()
    logger = logging.getLogger("produce_sync.global_exception")

    try:
        logger.critical(
            "Unhandled exception. incident_id=%s",
            incident_id,
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={"incident_id": incident_id, "cycle_id": cycle_id},
        )
    except Exception:  # noqa: BLE001
        _append_crash_line(incident_id, cycle_id, exc_value.with_traceback(exc_traceback))

    return incident_id


def _asyncio_exception_handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    if isinstance(exc, BaseException):
        handle_global_exception(type(exc), exc, exc.__traceback__)
        return
    logging.getLogger("produce_sync.global_exception").error(
        "Event loop error: %s", context.get("message", "unknown"), extra={"extra": {"context": str(context)}}
    )


def install_asyncio_exception_handler(loop: asyncio.AbstractEventLoop) -> None:
    loop.set_exception_handler(_asyncio_exception_handler)
