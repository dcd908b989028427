from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests

from produce_sync.core.errors import RemoteRejectedError, RemoteUnavailableError, RemoteWriteError
from produce_sync.core.metrics import measure_time
from produce_sync.domain.models import QueuedOrder, RemoteConfig, RemoteOrderRef, to_iso
from produce_sync.infrastructure.postgrest_errors import map_http_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
ORDERS_TABLE = "purchase_orders"
ORDER_ITEMS_TABLE = "purchase_order_items"
SUBMITTED_STATUS = "enviado"


class PostgrestOrdersGateway:
    """Purchase-order writes against the hosted backend's REST interface.

    ``requests`` is blocking, so the async port methods run the calls in a
    worker thread and keep the event loop free.
    """

    def __init__(
        self,
        config: RemoteConfig,
        *,
        session: requests.Session | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        if not config.is_complete:
            raise ValueError("Remote config requires url and anon key")
        self._config = config
        self._base_url = config.url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds

    async def find_order_by_offline_id(self, offline_id: str) -> RemoteOrderRef | None:
        return await asyncio.to_thread(self.find_order_by_offline_id_blocking, offline_id)

    async def create_order(self, order: QueuedOrder) -> str:
        return await asyncio.to_thread(self.create_order_blocking, order)

    async def add_order_items(self, remote_id: str, order: QueuedOrder) -> None:
        await asyncio.to_thread(self.add_order_items_blocking, remote_id, order)

    @measure_time("latency.remote_find_order_ms")
    def find_order_by_offline_id_blocking(self, offline_id: str) -> RemoteOrderRef | None:
        rows = self._request(
            "GET",
            ORDERS_TABLE,
            params={
                "select": f"id,{ORDER_ITEMS_TABLE}(count)",
                "offline_id": f"eq.{offline_id}",
                "limit": "1",
            },
        )
        if not rows:
            return None
        row = rows[0]
        return RemoteOrderRef(remote_id=str(row["id"]), item_count=_embedded_count(row.get(ORDER_ITEMS_TABLE)))

    @measure_time("latency.remote_create_order_ms")
    def create_order_blocking(self, order: QueuedOrder) -> str:
        rows = self._request(
            "POST",
            ORDERS_TABLE,
            json_payload={
                "supplier_id": order.supplier_id,
                "status": SUBMITTED_STATUS,
                "notes": order.notes,
                "offline_id": order.id,
                "created_at": to_iso(order.created_at) if order.created_at else None,
            },
            prefer="return=representation",
        )
        if not rows:
            raise RemoteRejectedError(f"{ORDERS_TABLE}: insert returned no row")
        remote_id = str(rows[0]["id"])

        try:
            self.add_order_items_blocking(remote_id, order)
        except RemoteWriteError:
            # A header left behind is completed by the next replay through add_order_items.
            self._delete_order_quietly(remote_id)
            raise

        logger.info("Remote order created remote_id=%s offline_id=%s items=%s", remote_id, order.id, len(order.items))
        return remote_id

    def add_order_items_blocking(self, remote_id: str, order: QueuedOrder) -> None:
        items = [
            {
                "order_id": remote_id,
                "product_id": item.product_id,
                "quantity": item.quantity,
                "unit": item.unit,
                "estimated_kg": item.estimated_kg,
                "unit_cost_estimated": item.unit_cost_estimated,
            }
            for item in order.items
        ]
        if items:
            # One bulk insert: the server stores every line or none of them.
            self._request("POST", ORDER_ITEMS_TABLE, json_payload=items, prefer="return=minimal")

    def close(self) -> None:
        self._session.close()

    def _delete_order_quietly(self, remote_id: str) -> None:
        try:
            self._request("DELETE", ORDERS_TABLE, params={"id": f"eq.{remote_id}"}, prefer="return=minimal")
        except RemoteWriteError:
            logger.warning("Could not remove orphan order header remote_id=%s", remote_id, exc_info=True)

    def _headers(self, prefer: str | None) -> dict[str, str]:
        headers = {
            "apikey": self._config.anon_key,
            "Authorization": f"Bearer {self._config.anon_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        if self._config.device_id:
            headers["X-Device-Id"] = self._config.device_id
        return headers

    def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json_payload: Any = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self._base_url}/rest/v1/{table}"
        try:
            response = self._session.request(
                method=method,
                url=url,
                headers=self._headers(prefer),
                params=params,
                json=json_payload,
                timeout=self._timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise RemoteUnavailableError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            raise map_http_error(response.status_code, response.text, context=f"{method} {table}")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteRejectedError(
                f"{method} {table}: invalid JSON in response", status_code=response.status_code
            ) from exc


def _embedded_count(value: Any) -> int:
    # PostgREST renders an embedded count as [{"count": n}].
    if isinstance(value, list) and value and isinstance(value[0], dict):
        return int(value[0].get("count") or 0)
    if isinstance(value, dict):
        return int(value.get("count") or 0)
    return 0
