from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Literal

from produce_sync.application.debounced_editor import DEFAULT_DEBOUNCE_SECONDS, DebouncedCommit
from produce_sync.core.errors import StorageError
from produce_sync.core.operational_logging import log_operational_error
from produce_sync.domain.models import now_utc, parse_iso, to_iso
from produce_sync.domain.ports import KeyValueStorePort

logger = logging.getLogger(__name__)

DRAFT_KEY_PREFIX = "receiving_draft_"

QualityStatus = Literal["ok", "parcial", "recusado"]


@dataclass(frozen=True)
class DraftItem:
    id: str
    quantity_received: float
    unit_cost_actual: float
    quality_status: QualityStatus = "ok"
    quality_notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "quantity_received": self.quantity_received,
            "unit_cost_actual": self.unit_cost_actual,
            "quality_status": self.quality_status,
            "quality_notes": self.quality_notes,
        }


@dataclass(frozen=True)
class ReceivingDraft:
    order_id: str
    items: tuple[DraftItem, ...] = field(default_factory=tuple)
    general_notes: str = ""
    saved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "items": [item.to_dict() for item in self.items],
            "general_notes": self.general_notes,
            "saved_at": to_iso(self.saved_at) if self.saved_at else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ReceivingDraft":
        saved_at = payload.get("saved_at")
        return cls(
            order_id=str(payload["order_id"]),
            items=tuple(DraftItem(**item) for item in payload.get("items", [])),
            general_notes=payload.get("general_notes", ""),
            saved_at=parse_iso(saved_at) if saved_at else None,
        )


class ReceivingDraftStore:
    """Auto-saves the receiving form of one purchase order while it is being filled in."""

    def __init__(
        self,
        storage: KeyValueStorePort,
        order_id: str,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._storage = storage
        self._order_id = order_id
        self._clock = clock
        self._saver = DebouncedCommit(self._write, delay_seconds=debounce_seconds)
        self._last_saved: datetime | None = None
        self._has_draft = self._exists()

    @property
    def key(self) -> str:
        return f"{DRAFT_KEY_PREFIX}{self._order_id}"

    @property
    def has_draft(self) -> bool:
        return self._has_draft

    @property
    def last_saved(self) -> datetime | None:
        return self._last_saved

    @property
    def save_pending(self) -> bool:
        return self._saver.pending

    def load(self) -> ReceivingDraft | None:
        try:
            raw = self._storage.get(self.key)
            if raw is None:
                return None
            return ReceivingDraft.from_dict(json.loads(raw))
        except (StorageError, ValueError, KeyError, TypeError) as exc:
            log_operational_error("Receiving draft load failed", exc=exc, extra={"order_id": self._order_id})
            return None

    def save(self, items: Iterable[DraftItem], general_notes: str = "") -> None:
        self._saver.schedule((tuple(items), general_notes))

    def flush(self) -> bool:
        return self._saver.flush()

    def clear(self) -> None:
        self._saver.cancel()
        try:
            self._storage.remove(self.key)
        except StorageError as exc:
            log_operational_error("Receiving draft clear failed", exc=exc, extra={"order_id": self._order_id})
            return
        self._has_draft = False
        self._last_saved = None

    def close(self) -> None:
        self._saver.cancel()

    def _exists(self) -> bool:
        try:
            return self._storage.get(self.key) is not None
        except StorageError:
            logger.warning("Receiving draft lookup failed order_id=%s", self._order_id, exc_info=True)
            return False

    def _write(self, payload: tuple[tuple[DraftItem, ...], str]) -> None:
        items, general_notes = payload
        saved_at = self._clock()
        draft = ReceivingDraft(order_id=self._order_id, items=items, general_notes=general_notes, saved_at=saved_at)
        try:
            self._storage.set(self.key, json.dumps(draft.to_dict(), ensure_ascii=False))
        except StorageError as exc:
            log_operational_error("Receiving draft save failed", exc=exc, extra={"order_id": self._order_id})
            return
        self._has_draft = True
        self._last_saved = saved_at
        logger.debug("Receiving draft saved order_id=%s items=%s", self._order_id, len(items))
