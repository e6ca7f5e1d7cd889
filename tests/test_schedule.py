# tests/test_schedule.py
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from conftest import ANNA, BMW, MARIA, WASH, WAX
from detailing.api import ApiError
from detailing.domain import Order, Selected, Work
from detailing.schedule import (
    ALL,
    MONTH_VIEW,
    WEEK_VIEW,
    default_filters,
    fetch_events,
    move_event,
    resolve_filters,
    to_event,
)

API = object()


def who(user):
    identity = MagicMock()
    identity.user = user
    identity.is_master_only = user.role_names == {"MASTER"}
    return identity


def booked(order_id=42, when=datetime(2024, 3, 13, 10, 0), status="NEW"):
    return Order(
        id=order_id,
        client_name="Иван",
        client_phone="+79990000000",
        car_brand=Selected(BMW),
        execution_date=when,
        works=[Work(work_type=Selected(WASH)), Work(work_type=Selected(WAX))],
        status=status,
    )


class TestFilters:
    def test_master_only_is_locked_to_self_in_week_view(self):
        filters = resolve_filters(who(ANNA), master="8", status="COMPLETED")

        assert filters.master_id == ANNA.id
        assert filters.master_locked
        assert filters.initial_view == WEEK_VIEW
        assert filters.status_param == "COMPLETED"

    def test_others_pick_any_master_in_month_view(self):
        assert default_filters(who(MARIA)).initial_view == MONTH_VIEW

        filters = resolve_filters(who(MARIA), master="8", status="bogus")
        assert filters.master_id == 8
        assert not filters.master_locked
        assert filters.status == ALL
        assert filters.status_param is None

    def test_all_masters(self):
        assert resolve_filters(who(MARIA), master=ALL, status=None).master_id is None


def test_event_spans_configured_duration():
    event = to_event(booked(), timedelta(minutes=90))

    assert event.title == "Иван - BMW"
    assert event.end - event.start == timedelta(minutes=90)
    assert event.work_types == ("Wash", "Wax")
    assert event.car_brand == BMW


def test_master_only_fetch_passes_own_id(order_repo):
    order_repo.list_calendar.return_value = [booked(), booked(order_id=43, when=None)]
    filters = resolve_filters(who(ANNA), master=None, status=ALL)
    start, end = datetime(2024, 3, 11), datetime(2024, 3, 18)

    events = fetch_events(API, order_repo, start=start, end=end, filters=filters)

    order_repo.list_calendar.assert_called_once_with(API, start=start, end=end, master_id=ANNA.id, status=None)
    assert [e.id for e in events] == [42]
    assert events[0].end == datetime(2024, 3, 13, 11, 0)


class TestMove:
    def test_successful_move_sends_full_order(self, order_repo):
        order_repo.get.return_value = booked()
        new_start = datetime(2024, 3, 14, 12, 0)

        result = move_event(API, order_repo, 42, new_start)

        assert result.ok and result.start == new_start
        sent = order_repo.update.call_args.args[2]
        assert sent.execution_date == new_start
        assert len(sent.works) == 2

    def test_failed_update_reports_original_start(self, order_repo):
        order_repo.get.return_value = booked()
        order_repo.update.side_effect = ApiError("conflict", status_code=409)

        result = move_event(API, order_repo, 42, datetime(2024, 3, 14, 12, 0))

        assert not result.ok
        assert result.start == datetime(2024, 3, 13, 10, 0)
        assert "conflict" in result.error

    def test_failed_load_does_not_update(self, order_repo):
        order_repo.get.side_effect = ApiError("gone", status_code=404)

        result = move_event(API, order_repo, 42, datetime(2024, 3, 14, 12, 0))

        assert not result.ok and result.start is None
        order_repo.update.assert_not_called()


@pytest.mark.parametrize("status", ["NEW", "IN_PROGRESS", "COMPLETED", "CANCELLED"])
def test_event_keeps_status(status):
    assert to_event(booked(status=status), timedelta(hours=1)).status == status
