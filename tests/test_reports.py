# tests/test_reports.py
from datetime import date, datetime
from decimal import Decimal

from detailing.domain import (
    MasterDetailEarning,
    MasterDetailReport,
    MasterWeeklyReport,
    OrderEarning,
    WorkTypeEarning,
)
from detailing.reports import NO_DATA, TOTAL_LABEL, format_cell, master_detail, week_range, weekly_summary


def weekly(master_id, first, earnings, total):
    return MasterWeeklyReport(
        master_id=master_id,
        master_first_name=first,
        master_last_name="",
        earnings=tuple(WorkTypeEarning(None, name, Decimal(v)) for name, v in earnings),
        total_master_earnings=Decimal(total),
    )


def test_weekly_summary_pivots_masters_by_work_type():
    table = weekly_summary(
        [
            weekly(1, "A", [("Wax", "5"), ("Wash", "10")], "15"),
            weekly(2, "B", [("Wash", "7")], "7"),
        ]
    )

    assert table.columns == ["Wash", "Wax", TOTAL_LABEL]
    assert [r.label for r in table.rows] == ["A", "B"]
    assert table.rows[0].cells == [Decimal("10"), Decimal("5"), Decimal("15")]
    assert table.rows[1].cells == [Decimal("7"), NO_DATA, Decimal("7")]
    assert table.footer == [Decimal("17"), Decimal("5"), Decimal("22")]


def test_total_column_is_reported_not_recomputed():
    table = weekly_summary([weekly(1, "A", [("Wash", "10")], "12.50")])
    assert table.rows[0].cells[-1] == Decimal("12.50")


def test_zero_earning_is_not_no_data():
    table = weekly_summary([weekly(1, "A", [("Wash", "0")], "0")])
    assert table.rows[0].cells[0] == Decimal("0")
    assert format_cell(table.rows[0].cells[0]) == "0.00"
    assert format_cell(NO_DATA) == "–"


def test_empty_week_has_only_total_column():
    table = weekly_summary([])
    assert table.columns == [TOTAL_LABEL]
    assert table.rows == []
    assert table.footer == [Decimal("0")]


def order_earning(order_id, when, amount):
    return OrderEarning(order_id, f"client {order_id}", when, Decimal(amount))


def test_master_detail_orders_columns_by_execution_date():
    report = MasterDetailReport(
        master_id=7,
        master_first_name="Анна",
        master_last_name="Мастерова",
        report_details=(
            MasterDetailEarning(
                10,
                "Wash",
                (
                    order_earning(3, datetime(2024, 3, 14, 9), "30"),
                    order_earning(1, datetime(2024, 3, 12, 9), "10"),
                ),
            ),
            MasterDetailEarning(11, "Wax", (order_earning(2, datetime(2024, 3, 12, 9), "20"),)),
        ),
    )

    table = master_detail(report)

    # orders 1 and 2 share a date and keep the order in which they first appeared
    assert [c.order_id for c in table.order_columns] == [1, 2, 3]
    assert table.columns == ["Заказ №1", "Заказ №2", "Заказ №3", TOTAL_LABEL]
    assert table.rows[0].cells == [Decimal("10"), NO_DATA, Decimal("30"), Decimal("40")]
    assert table.rows[1].cells == [NO_DATA, Decimal("20"), NO_DATA, Decimal("20")]
    assert table.footer == [Decimal("10"), Decimal("20"), Decimal("30"), Decimal("60")]


def test_week_range_runs_monday_to_sunday():
    start, end = week_range(date(2024, 3, 13))
    assert start == datetime(2024, 3, 11, 0, 0, 0)
    assert end == datetime(2024, 3, 17, 23, 59, 59)

    assert week_range(datetime(2024, 3, 17, 23, 0)) == (start, end)
    assert week_range(date(2024, 3, 18))[0] == datetime(2024, 3, 18)
