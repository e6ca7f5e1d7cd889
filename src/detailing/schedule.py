from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .api import ApiError, ApiSession
from .domain import CalendarEvent, Order, selected_or_none
from .identity import Identity
from .repositories.order_repo import OrderRepository

logger = logging.getLogger(__name__)

ALL = "all"

STATUS_FILTERS: list[tuple[str, str]] = [
    (ALL, "Все статусы"),
    ("NEW", "Новые"),
    ("IN_PROGRESS", "В работе"),
    ("COMPLETED", "Завершены"),
    ("CANCELLED", "Отменены"),
]

WEEK_VIEW = "timeGridWeek"
MONTH_VIEW = "dayGridMonth"


@dataclass(frozen=True)
class CalendarFilters:
    master_id: Optional[int]
    status: str
    master_locked: bool
    initial_view: str

    @property
    def status_param(self) -> Optional[str]:
        return None if self.status == ALL else self.status


@dataclass(frozen=True)
class MoveResult:
    ok: bool
    start: Optional[datetime]
    error: Optional[str] = None


def default_filters(identity: Identity) -> CalendarFilters:
    if identity.is_master_only:
        return CalendarFilters(
            master_id=identity.user.id,
            status=ALL,
            master_locked=True,
            initial_view=WEEK_VIEW,
        )
    return CalendarFilters(master_id=None, status=ALL, master_locked=False, initial_view=MONTH_VIEW)


def resolve_filters(identity: Identity, master: Optional[str], status: Optional[str]) -> CalendarFilters:
    base = default_filters(identity)
    valid_statuses = {code for code, _ in STATUS_FILTERS}
    status = status if status in valid_statuses else ALL

    master_id = base.master_id
    if not base.master_locked and master and master != ALL:
        try:
            master_id = int(master)
        except ValueError:
            master_id = None
    return CalendarFilters(
        master_id=master_id,
        status=status,
        master_locked=base.master_locked,
        initial_view=base.initial_view,
    )


def to_event(order: Order, duration: timedelta) -> CalendarEvent:
    brand = selected_or_none(order.car_brand)
    work_types = tuple(wt.name for wt in (selected_or_none(w.work_type) for w in order.works) if wt is not None)
    return CalendarEvent(
        id=order.id,
        title=f"{order.client_name} - {brand.name if brand else ''}",
        start=order.execution_date,
        end=order.execution_date + duration,
        client_name=order.client_name,
        client_phone=order.client_phone,
        car_brand=brand,
        work_types=work_types,
        status=order.status,
    )


def fetch_events(
    api: ApiSession,
    order_repo: OrderRepository,
    *,
    start: datetime,
    end: datetime,
    filters: CalendarFilters,
    duration: timedelta = timedelta(hours=1),
) -> list[CalendarEvent]:
    orders = order_repo.list_calendar(
        api,
        start=start,
        end=end,
        master_id=filters.master_id,
        status=filters.status_param,
    )
    return [to_event(o, duration) for o in orders if o.execution_date is not None]


def move_event(api: ApiSession, order_repo: OrderRepository, order_id: int, new_start: datetime) -> MoveResult:
    """Reschedule an order after a drag; on failure report where it was so the view can revert."""
    try:
        order = order_repo.get(api, order_id)
    except ApiError as e:
        logger.error("Cannot load order #%s for rescheduling: %s", order_id, e)
        return MoveResult(ok=False, start=None, error=str(e))

    original = order.execution_date
    order.execution_date = new_start
    try:
        order_repo.update(api, order_id, order)
    except ApiError as e:
        logger.error("Rescheduling order #%s failed, reverting: %s", order_id, e)
        return MoveResult(ok=False, start=original, error=str(e))
    logger.info("Order #%s moved to %s", order_id, new_start.isoformat())
    return MoveResult(ok=True, start=new_start)
