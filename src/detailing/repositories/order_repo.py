from __future__ import annotations

from datetime import datetime

from ..api import ApiSession
from ..domain import Order
from ..mapping import format_datetime, order_from_api, order_to_payload


class OrderRepository:
    def create(self, api: ApiSession, order: Order) -> int | None:
        data = api.post("/orders", json=order_to_payload(order))
        return data.get("id") if isinstance(data, dict) else None

    def update(self, api: ApiSession, order_id: int, order: Order) -> None:
        api.put(f"/orders/{order_id}", json=order_to_payload(order))

    def get(self, api: ApiSession, order_id: int) -> Order:
        return order_from_api(api.get(f"/orders/{order_id}"))

    def list_calendar(
        self,
        api: ApiSession,
        *,
        start: datetime,
        end: datetime,
        master_id: int | None = None,
        status: str | None = None,
    ) -> list[Order]:
        rows = api.get(
            "/orders/calendar",
            params={
                "start": format_datetime(start),
                "end": format_datetime(end),
                "masterId": master_id,
                "status": status,
            },
        )
        return [order_from_api(r) for r in rows or ()]

    def change_status(self, api: ApiSession, *, order_id: int, code: str, master_id: int | None = None) -> None:
        api.get(f"/orders/change/{order_id}", params={"code": code, "master": master_id})
