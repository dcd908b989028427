from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class RetryPolicy:
    initial_backoff_seconds: float = 5.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 300.0

    def backoff_for(self, consecutive_failures: int) -> float:
        if consecutive_failures <= 0:
            return 0.0
        backoff = self.initial_backoff_seconds * (self.backoff_multiplier ** (consecutive_failures - 1))
        return min(backoff, self.max_backoff_seconds)


@dataclass(frozen=True)
class _FailureStreak:
    failures: int
    retry_at: datetime


class TaskBackoff:
    """Per-task failure streaks used to defer tasks on automatic cycles.

    Streaks never expire on their own and nothing is ever dropped: a task is
    only postponed until ``retry_at``.
    """

    def __init__(self, policy: RetryPolicy | None = None) -> None:
        self._policy = policy or RetryPolicy()
        self._streaks: dict[str, _FailureStreak] = {}

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def is_ready(self, task_id: str, now: datetime) -> bool:
        streak = self._streaks.get(task_id)
        return streak is None or now >= streak.retry_at

    def failures(self, task_id: str) -> int:
        streak = self._streaks.get(task_id)
        return streak.failures if streak else 0

    def retry_at(self, task_id: str) -> datetime | None:
        streak = self._streaks.get(task_id)
        return streak.retry_at if streak else None

    def record_failure(self, task_id: str, now: datetime) -> datetime:
        failures = self.failures(task_id) + 1
        retry_at = now + timedelta(seconds=self._policy.backoff_for(failures))
        self._streaks[task_id] = _FailureStreak(failures=failures, retry_at=retry_at)
        return retry_at

    def record_success(self, task_id: str) -> None:
        self._streaks.pop(task_id, None)

    def forget_missing(self, live_task_ids: set[str]) -> None:
        for task_id in [known for known in self._streaks if known not in live_task_ids]:
            del self._streaks[task_id]
