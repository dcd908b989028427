from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.5

_NOTHING = object()


class DebouncedCommit:
    """Defers a commit until input has been quiet for ``delay_seconds``.

    Every ``schedule`` replaces the pending value and restarts the timer; only
    the last value is committed. ``commit`` may be a plain function or return an
    awaitable, which is then run as a task on the loop.
    """

    def __init__(self, commit: Callable[[Any], object], *, delay_seconds: float = DEFAULT_DEBOUNCE_SECONDS) -> None:
        self._commit = commit
        self._delay_seconds = max(0.0, delay_seconds)
        self._handle: asyncio.TimerHandle | None = None
        self._value: Any = _NOTHING
        self._running: set[asyncio.Future[Any]] = set()

    @property
    def pending(self) -> bool:
        return self._value is not _NOTHING

    def schedule(self, value: Any) -> None:
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self._value = value
        self._handle = loop.call_later(self._delay_seconds, self._fire)

    def flush(self) -> bool:
        if not self.pending:
            return False
        self._fire()
        return True

    def cancel(self) -> bool:
        had_pending = self.pending
        self._cancel_timer()
        self._value = _NOTHING
        return had_pending

    async def drain(self) -> None:
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._cancel_timer()
        value, self._value = self._value, _NOTHING
        if value is _NOTHING:
            return
        try:
            outcome = self._commit(value)
        except Exception:  # noqa: BLE001
            logger.exception("Deferred commit failed")
            return
        if inspect.isawaitable(outcome):
            future = asyncio.ensure_future(outcome)
            self._running.add(future)
            future.add_done_callback(self._on_commit_done)

    def _on_commit_done(self, future: asyncio.Future[Any]) -> None:
        self._running.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Deferred commit failed", exc_info=(type(exc), exc, exc.__traceback__))


def parse_quantity(raw: str) -> int:
    """Whole quantity typed by the user; anything unusable becomes 1."""
    try:
        value = int(float(raw.strip()))
    except (ValueError, OverflowError):
        return 1
    return value if value >= 1 else 1


class QuantityEditor:
    """Two-tier quantity state for one order line.

    ``quantity`` changes immediately on every edit; ``on_quantity_change`` only
    sees the last value once edits pause for the debounce window.
    """

    def __init__(
        self,
        product_id: str,
        quantity: int,
        *,
        on_quantity_change: Callable[[str, int], object],
        on_remove: Callable[[str], object],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.product_id = product_id
        self._quantity = quantity
        self._on_remove = on_remove
        self._commit = DebouncedCommit(
            lambda value: on_quantity_change(product_id, value),
            delay_seconds=debounce_seconds,
        )

    @property
    def quantity(self) -> int:
        return self._quantity

    @property
    def commit_pending(self) -> bool:
        return self._commit.pending

    def increment(self) -> None:
        self._set(self._quantity + 1)

    def decrement(self) -> None:
        if self._quantity <= 1:
            self._commit.cancel()
            self._on_remove(self.product_id)
            return
        self._set(self._quantity - 1)

    def set_from_text(self, raw: str) -> None:
        self._set(parse_quantity(raw))

    def sync_from_source(self, quantity: int) -> None:
        # Upstream value changed (e.g. committed elsewhere); no new commit.
        self._quantity = quantity

    def flush(self) -> bool:
        return self._commit.flush()

    def close(self) -> None:
        self._commit.cancel()

    def _set(self, quantity: int) -> None:
        self._quantity = quantity
        self._commit.schedule(quantity)
