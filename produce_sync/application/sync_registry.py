from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from produce_sync.domain.sync_models import SyncTask

logger = logging.getLogger(__name__)


class SyncTaskRegistry:
    """Shared id -> task mapping.

    Re-registering an id replaces the task but keeps its original slot, so the
    tie-break among equal priorities stays the first registration order.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, SyncTask] = {}

    def register(self, task: SyncTask) -> None:
        replaced = task.id in self._tasks
        self._tasks[task.id] = task
        logger.debug("sync task %s id=%s priority=%s", "replaced" if replaced else "registered", task.id, task.priority)

    def unregister(self, task_id: str) -> None:
        if self._tasks.pop(task_id, None) is not None:
            logger.debug("sync task unregistered id=%s", task_id)

    def get(self, task_id: str) -> SyncTask | None:
        return self._tasks.get(task_id)

    def list_sorted_by_priority(self) -> list[SyncTask]:
        return sorted(self._tasks.values(), key=lambda task: task.priority)

    @contextmanager
    def mounted(self, task: SyncTask) -> Iterator[SyncTask]:
        """Keep ``task`` registered for the lifetime of the block.

        On exit the entry is removed only if it is still this task, so an older
        owner leaving late cannot drop a newer registration under the same id.
        """
        self.register(task)
        try:
            yield task
        finally:
            if self._tasks.get(task.id) is task:
                self.unregister(task.id)

    def clear(self) -> None:
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks
