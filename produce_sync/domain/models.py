from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Literal

OrderUnit = Literal["cx", "kg"]
VALID_UNITS: tuple[str, ...] = ("cx", "kg")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def derive_estimated_kg(quantity: float, unit: str, kg_per_box: float | None = None) -> float:
    # Boxes without a known weight count one kg per box, like the order form does.
    if unit == "cx" and kg_per_box:
        return round(quantity * kg_per_box, 3)
    return float(quantity)


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    product_name: str
    quantity: float
    unit: OrderUnit = "cx"
    estimated_kg: float | None = None
    unit_cost_estimated: float | None = None

    def __post_init__(self) -> None:
        if self.unit not in VALID_UNITS:
            raise ValueError(f"Unsupported unit: {self.unit}")
        if self.estimated_kg is None:
            object.__setattr__(self, "estimated_kg", derive_estimated_kg(self.quantity, self.unit))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "estimated_kg": self.estimated_kg,
        }
        if self.unit_cost_estimated is not None:
            payload["unit_cost_estimated"] = self.unit_cost_estimated
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=str(payload["product_id"]),
            product_name=str(payload.get("product_name", "")),
            quantity=payload["quantity"],
            unit=payload.get("unit", "cx"),
            estimated_kg=payload.get("estimated_kg"),
            unit_cost_estimated=payload.get("unit_cost_estimated"),
        )


@dataclass(frozen=True)
class QueuedOrder:
    """A purchase order waiting to reach the remote store.

    ``id`` doubles as the remote ``offline_id`` so a replay can tell whether an
    earlier attempt already landed.
    """

    items: tuple[OrderItem, ...]
    id: str = ""
    created_at: datetime | None = None
    supplier_id: str | None = None
    notes: str | None = None
    synced: bool = False

    def with_identity(self, *, order_id: str, created_at: datetime) -> "QueuedOrder":
        return replace(self, id=self.id or order_id, created_at=self.created_at or created_at)

    @property
    def total_estimated_kg(self) -> float:
        return round(sum(item.estimated_kg or 0.0 for item in self.items), 3)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "items": [item.to_dict() for item in self.items],
            "notes": self.notes,
            "created_at": to_iso(self.created_at) if self.created_at else None,
            "synced": self.synced,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "QueuedOrder":
        created_at = payload.get("created_at")
        return cls(
            id=str(payload["id"]),
            items=tuple(OrderItem.from_dict(item) for item in payload.get("items", [])),
            created_at=parse_iso(created_at) if created_at else None,
            supplier_id=payload.get("supplier_id") or None,
            notes=payload.get("notes") or None,
            synced=bool(payload.get("synced", False)),
        )


@dataclass(frozen=True)
class RemoteConfig:
    url: str
    anon_key: str
    device_id: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.url.strip() and self.anon_key.strip())


@dataclass(frozen=True)
class RemoteOrderRef:
    """A purchase order header found on the server, with how many lines it holds."""

    remote_id: str
    item_count: int = 0

    def holds_all_items_of(self, order: QueuedOrder) -> bool:
        return self.item_count >= len(order.items)
