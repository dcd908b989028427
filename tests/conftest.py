from __future__ import annotations

import asyncio
import importlib
import logging
import os
import platform
import sqlite3
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _is_linux_headless() -> bool:
    if platform.system() != "Linux":
        return False
    return not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))


if _is_linux_headless():
    os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
    os.environ.setdefault("QT_OPENGL", "software")


_UI_BACKEND_ERROR: str | None = None


def _detect_ui_backend_issue() -> str | None:
    try:
        importlib.import_module("PySide6")
        importlib.import_module("PySide6.QtCore")
        importlib.import_module("PySide6.QtNetwork")
        importlib.import_module("PySide6.QtWidgets")
        return None
    except Exception as exc:  # pragma: no cover - depends on the host
        return f"PySide6/Qt not available for UI tests: {exc}"


def pytest_configure(config: pytest.Config) -> None:
    global _UI_BACKEND_ERROR
    config.addinivalue_line("markers", "ui: tests that need PySide6/Qt")
    _UI_BACKEND_ERROR = _detect_ui_backend_issue()


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    skip_ui = None
    if _UI_BACKEND_ERROR is not None:
        skip_ui = pytest.mark.skip(reason=_UI_BACKEND_ERROR)

    for item in items:
        if "tests/ui/" in item.nodeid:
            item.add_marker(pytest.mark.ui)
        if skip_ui is not None and "ui" in item.keywords:
            item.add_marker(skip_ui)


from produce_sync.core.errors import RemoteUnavailableError, StorageError
from produce_sync.domain.models import OrderItem, QueuedOrder, RemoteOrderRef
from produce_sync.domain.sync_models import Notification
from produce_sync.infrastructure.local_storage_sqlite import SqliteKeyValueStore
from produce_sync.infrastructure.migrations import run_migrations


class RecordingNotifier:
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def titles(self) -> list[str]:
        return [notification.title for notification in self.notifications]

    def of_level(self, level: str) -> list[Notification]:
        return [notification for notification in self.notifications if notification.level == level]


class FakeRemoteOrders:
    """In-memory server keeping order headers and their line counts apart."""

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self.line_counts: dict[str, int] = {}
        self.created: list[QueuedOrder] = []
        self.fail_ids: set[str] = set()
        self.fail_all = False
        self.drop_after_header = False
        self.find_calls = 0
        self.create_calls = 0
        self.add_items_calls = 0
        self.gate: asyncio.Event | None = None

    def seed(self, offline_id: str, remote_id: str, *, item_count: int) -> None:
        self.headers[offline_id] = remote_id
        self.line_counts[remote_id] = item_count

    async def find_order_by_offline_id(self, offline_id: str) -> RemoteOrderRef | None:
        self.find_calls += 1
        remote_id = self.headers.get(offline_id)
        if remote_id is None:
            return None
        return RemoteOrderRef(remote_id=remote_id, item_count=self.line_counts.get(remote_id, 0))

    async def create_order(self, order: QueuedOrder) -> str:
        self.create_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_all or order.id in self.fail_ids:
            raise RemoteUnavailableError("backend down")
        remote_id = f"remote-{len(self.headers) + 1}"
        self.headers[order.id] = remote_id
        self.line_counts[remote_id] = 0
        if self.drop_after_header:
            raise RemoteUnavailableError("connection lost after header insert")
        self.line_counts[remote_id] = len(order.items)
        self.created.append(order)
        return remote_id

    async def add_order_items(self, remote_id: str, order: QueuedOrder) -> None:
        self.add_items_calls += 1
        if self.fail_all or order.id in self.fail_ids:
            raise RemoteUnavailableError("backend down")
        self.line_counts[remote_id] = self.line_counts.get(remote_id, 0) + len(order.items)


class FailingStore:
    """Key/value store whose every call fails like a broken disk."""

    def get(self, key: str) -> str | None:
        raise StorageError("disk unavailable")

    def set(self, key: str, value: str) -> None:
        raise StorageError("disk unavailable")

    def remove(self, key: str) -> bool:
        raise StorageError("disk unavailable")

    def keys(self, prefix: str = "") -> list[str]:
        raise StorageError("disk unavailable")


class StepClock:
    def __init__(self, start: datetime | None = None, step_seconds: float = 1.0) -> None:
        self.current = start or datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
        self.step = timedelta(seconds=step_seconds)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


class FrozenClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current = self.current + timedelta(**delta)


def make_item(product_id: str = "p-1", quantity: float = 2, unit: str = "cx") -> OrderItem:
    return OrderItem(product_id=product_id, product_name=f"Produto {product_id}", quantity=quantity, unit=unit)


@pytest.fixture(autouse=True)
def _close_test_log_files():
    root = logging.getLogger()
    level = root.level
    before = list(root.handlers)
    yield
    for handler in list(root.handlers):
        if isinstance(handler, RotatingFileHandler) and handler not in before:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def connection() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def storage(connection: sqlite3.Connection) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(connection)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def remote() -> FakeRemoteOrders:
    return FakeRemoteOrders()


@pytest.fixture
def failing_store() -> FailingStore:
    return FailingStore()


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def frozen_clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def item_factory():
    return make_item
