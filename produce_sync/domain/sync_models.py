from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal

SyncAction = Callable[[], Awaitable[None]]
NotificationLevel = Literal["success", "warning", "error"]

DEFAULT_TASK_PRIORITY = 10


@dataclass(frozen=True, eq=False)
class SyncTask:
    """A named unit of sync work. Lower ``priority`` runs earlier."""

    id: str
    name: str
    action: SyncAction
    priority: int = DEFAULT_TASK_PRIORITY


@dataclass(frozen=True)
class SyncStatus:
    is_online: bool = True
    is_syncing: bool = False
    last_sync_at: datetime | None = None
    pending_task_count: int = 0
    current_task_name: str | None = None
    sync_progress_percent: int = 0


@dataclass(frozen=True)
class CycleResult:
    total: int = 0
    completed: int = 0
    errors: int = 0
    deferred: int = 0
    interrupted: bool = False
    cycle_id: str | None = None

    @property
    def ran(self) -> bool:
        return self.completed + self.errors > 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReplayResult:
    pending: int = 0
    delivered: int = 0
    completed: int = 0
    already_remote: int = 0
    failed: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SubmissionResult:
    success: bool
    offline: bool
    order_id: str


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    description: str | None = None
    duration_ms: int | None = None
