from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from produce_sync.domain.models import now_utc
from produce_sync.domain.sync_models import SyncStatus


@dataclass(frozen=True)
class StatusDescription:
    headline: str
    detail: str
    can_trigger_sync: bool
    show_progress: bool
    progress_percent: int


def _plural(value: int, singular: str, plural: str) -> str:
    return f"{value} {singular if value == 1 else plural}"


def format_elapsed(since: datetime, now: datetime) -> str:
    seconds = max(0, int((now - since).total_seconds()))
    if seconds < 60:
        return "há menos de um minuto"
    minutes = seconds // 60
    if minutes < 60:
        return f"há {_plural(minutes, 'minuto', 'minutos')}"
    hours = minutes // 60
    if hours < 24:
        return f"há {_plural(hours, 'hora', 'horas')}"
    return f"há {_plural(hours // 24, 'dia', 'dias')}"


def describe_status(status: SyncStatus, now: datetime | None = None) -> StatusDescription:
    if status.is_syncing:
        headline = "Sincronizando..."
    elif status.is_online:
        headline = "Online"
    else:
        headline = "Offline"

    if status.is_syncing and status.current_task_name:
        detail = f"{status.current_task_name} ({status.sync_progress_percent}%)"
    elif status.last_sync_at is not None:
        detail = f"Última sync: {format_elapsed(status.last_sync_at, now or now_utc())}"
    else:
        detail = "Nenhuma sincronização"

    return StatusDescription(
        headline=headline,
        detail=detail,
        can_trigger_sync=status.is_online and not status.is_syncing,
        show_progress=status.is_syncing,
        progress_percent=status.sync_progress_percent,
    )
