from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable


@dataclass
class TimingStats:
    count: int = 0
    total_ms: float = 0.0
    last_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, milliseconds: float) -> None:
        self.count += 1
        self.total_ms += milliseconds
        self.last_ms = milliseconds
        self.max_ms = max(self.max_ms, milliseconds)

    def to_dict(self) -> dict[str, float | int]:
        return {
            "count": self.count,
            "last": round(self.last_ms, 3),
            "avg": round(self.total_ms / self.count, 3) if self.count else 0.0,
            "max": round(self.max_ms, 3),
        }


class MetricsRegistry:
    """Process-wide counters (``sync.*``, ``queue.*``, ``orders.*``) and latency aggregates.

    Gateway calls run in worker threads through ``asyncio.to_thread``, hence the lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: Counter[str] = Counter()
        self._timings: dict[str, TimingStats] = {}

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters[name]

    def increment(self, name: str, value: int = 1) -> None:
        if value <= 0:
            return
        with self._lock:
            self._counters[name] += value

    def record_timing(self, name: str, milliseconds: float) -> None:
        with self._lock:
            self._timings.setdefault(name, TimingStats()).add(milliseconds)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(sorted(self._counters.items())),
                "timings_ms": {name: stats.to_dict() for name, stats in sorted(self._timings.items())},
            }


metrics_registry = MetricsRegistry()


def measure_time(metric_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                metrics_registry.record_timing(metric_name, (perf_counter() - started) * 1000)

        return wrapper

    return decorator
