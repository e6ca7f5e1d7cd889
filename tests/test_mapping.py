# tests/test_mapping.py
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import ANNA, BMW, HOOD, WASH
from detailing.api import ApiError
from detailing.domain import UNSELECTED, InfoSource, Part, Selected, WorkType
from detailing.mapping import (
    detail_report_from_api,
    dictionary_by_type_from_api,
    dictionary_entry_from_api,
    dictionary_entry_to_api,
    order_from_api,
    order_to_payload,
    parse_datetime,
    user_from_api,
)
from detailing.reports import master_detail

ORDER_JSON = {
    "id": 42,
    "clientName": "Иван",
    "clientPhone": "+79990000000",
    "carBrand": {"id": 1, "name": "BMW"},
    "vin": None,
    "works": [
        {
            "id": 5,
            "workType": {"id": 10, "code": "WASH", "name": "Wash", "active": True},
            "parts": [{"id": 100, "code": "HOOD", "name": "Капот", "active": True}],
            "comment": "",
            "cost": 1500,
            "assignments": [
                {
                    "id": 9,
                    "master": {
                        "id": 7,
                        "username": "anna",
                        "firstName": "Анна",
                        "lastName": "Мастерова",
                        "phone": "+70000000007",
                        "roles": [{"id": 3, "name": "MASTER"}],
                    },
                    "salaryPercent": 30,
                }
            ],
        }
    ],
    "infoSource": None,
    "executionDate": "2024-03-13T10:00",
    "orderCost": 5000,
    "executionTimeByMaster": "2h",
    "status": "IN_PROGRESS",
}


def test_order_from_api_builds_selections():
    order = order_from_api(ORDER_JSON)

    assert order.id == 42
    assert order.car_brand == Selected(BMW)
    assert order.info_source is UNSELECTED
    assert order.execution_date == datetime(2024, 3, 13, 10, 0)
    assert order.order_cost == Decimal("5000")
    work = order.works[0]
    assert work.work_type == Selected(WASH)
    assert work.parts == [HOOD]
    assert work.assignments[0].master == Selected(ANNA)
    assert work.assignments[0].salary_percent == Decimal("30")


def test_order_payload_round_trips_the_backend_shape():
    payload = order_to_payload(order_from_api(ORDER_JSON))

    assert payload == ORDER_JSON


def test_new_order_payload_has_no_ids():
    order = order_from_api({**ORDER_JSON, "id": None})
    order.id = None
    order.works[0].id = None
    order.works[0].assignments[0].id = None

    payload = order_to_payload(order)
    assert "id" not in payload
    assert "id" not in payload["works"][0]
    assert "id" not in payload["works"][0]["assignments"][0]


def test_fractional_numbers_are_sent_as_floats():
    order = order_from_api({**ORDER_JSON, "orderCost": "1234.50"})
    assert order_to_payload(order)["orderCost"] == 1234.5


def test_dictionary_entries_are_classified_by_type_tag():
    work_type = dictionary_entry_from_api({"id": 10, "code": "WASH", "name": "Wash", "type": "WORK_TYPE"})
    info = dictionary_entry_from_api({"id": 50, "name": "Instagram", "code": "INSTAGRAM", "type": "INFO"})
    part = dictionary_entry_from_api({"id": 100, "code": "HOOD", "name": "Капот", "type": "WASH"}, ["WASH"])

    assert isinstance(work_type, WorkType)
    assert isinstance(info, InfoSource)
    assert isinstance(part, Part) and part.work_type_code == "WASH"

    with pytest.raises(ApiError, match="Unknown dictionary entry type"):
        dictionary_entry_from_api({"id": 1, "code": "X", "name": "X", "type": "NOPE"}, ["WASH"])


def test_info_source_serializes_name_before_code():
    info = InfoSource(50, "Instagram", "INSTAGRAM")
    assert list(dictionary_entry_to_api(info)) == ["id", "name", "code", "active"]
    assert list(dictionary_entry_to_api(HOOD)) == ["id", "code", "name", "active"]


def test_dictionary_by_type_uses_requested_code():
    parts = dictionary_by_type_from_api([{"id": 100, "code": "HOOD", "name": "Капот"}], "WASH")
    assert parts == [HOOD]


def test_malformed_payload_raises_api_error():
    with pytest.raises(ApiError, match="user_from_api"):
        user_from_api({"username": "no-id"})
    with pytest.raises(ApiError):
        order_from_api({**ORDER_JSON, "executionDate": "not a date"})


def test_zoned_timestamps_become_naive_local_time():
    utc = parse_datetime("2024-03-13T07:00:00Z")
    offset = parse_datetime("2024-03-13T10:00:00+03:00")

    assert utc.tzinfo is None and offset.tzinfo is None
    assert utc == datetime(2024, 3, 13, 7, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert utc == offset
    assert parse_datetime("2024-03-13T10:00") == datetime(2024, 3, 13, 10, 0)


def test_detail_report_mixing_zoned_and_local_dates_can_be_pivoted():
    report = detail_report_from_api(
        {
            "masterId": 7,
            "reportDetails": [
                {
                    "workTypeId": 10,
                    "workTypeName": "Wash",
                    "earningsByOrder": [
                        {"orderId": 1, "executionDate": "2024-03-12T09:00:00Z", "earning": 10},
                        {"orderId": 2, "executionDate": "2024-03-14T09:00", "earning": 20},
                    ],
                }
            ],
        }
    )

    table = master_detail(report)

    assert {c.order_id for c in table.order_columns} == {1, 2}
    assert table.footer[-1] == Decimal("30")
