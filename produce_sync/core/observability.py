from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Iterator

_CYCLE_ID: ContextVar[str | None] = ContextVar("sync_cycle_id", default=None)
_TASK_ID: ContextVar[str | None] = ContextVar("sync_task_id", default=None)


def new_cycle_id() -> str:
    return f"cyc-{uuid.uuid4().hex[:12]}"


def current_cycle_id() -> str | None:
    return _CYCLE_ID.get()


def current_task_id() -> str | None:
    return _TASK_ID.get()


class SyncCycleScope:
    """Tags every log record of one sync cycle with the cycle id.

    ``task()`` narrows the scope to the task being executed. Context vars are
    copied into asyncio tasks when they are created, so two cycles on the same
    loop never see each other's ids.
    """

    def __init__(self, trigger: str) -> None:
        self.trigger = trigger
        self.cycle_id = new_cycle_id()
        self._tokens: tuple[Token[str | None], Token[str | None]] | None = None

    def __enter__(self) -> "SyncCycleScope":
        self._tokens = (_CYCLE_ID.set(self.cycle_id), _TASK_ID.set(None))
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if self._tokens is None:
            return
        cycle_token, task_token = self._tokens
        _TASK_ID.reset(task_token)
        _CYCLE_ID.reset(cycle_token)
        self._tokens = None

    @contextmanager
    def task(self, task_id: str) -> Iterator[str]:
        token = _TASK_ID.set(task_id)
        try:
            yield task_id
        finally:
            _TASK_ID.reset(token)

    def event(self, logger: Any, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Logs a structured cycle event (``sync_cycle_started`` and friends) and returns it."""
        event = {
            "event": name,
            "cycle_id": self.cycle_id,
            "trigger": self.trigger,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        task_id = current_task_id()
        if task_id:
            event["task_id"] = task_id
        logger.info(name, extra={"cycle_id": self.cycle_id, "extra": event})
        return event
