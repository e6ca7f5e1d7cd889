from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Sequence, Union

from .domain import MasterDetailReport, MasterWeeklyReport

TOTAL_LABEL = "Итого"


class _NoData:
    """Cell marker for "did no such work"; zero is a real earned amount."""

    _instance: "_NoData | None" = None

    def __new__(cls) -> "_NoData":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_DATA"

    def __str__(self) -> str:
        return "–"


NO_DATA = _NoData()

Cell = Union[Decimal, _NoData]


@dataclass(frozen=True)
class PivotRow:
    key: int
    label: str
    cells: list[Cell]


@dataclass(frozen=True)
class OrderColumn:
    order_id: int
    client_name: str
    execution_date: datetime

    @property
    def label(self) -> str:
        return f"Заказ №{self.order_id}"


@dataclass(frozen=True)
class PivotTable:
    columns: list[str]
    rows: list[PivotRow]
    footer: list[Decimal]
    order_columns: list[OrderColumn] | None = None


def week_range(pivot: date | datetime) -> tuple[datetime, datetime]:
    """Monday 00:00:00 to Sunday 23:59:59 of the week containing ``pivot``."""
    day = pivot.date() if isinstance(pivot, datetime) else pivot
    monday = day - timedelta(days=day.weekday())
    start = datetime.combine(monday, time.min)
    end = datetime.combine(monday + timedelta(days=6), time(23, 59, 59))
    return start, end


def format_cell(value: Cell) -> str:
    if value is NO_DATA:
        return str(NO_DATA)
    return f"{value:.2f}"


def _footer(rows: Sequence[PivotRow], width: int) -> list[Decimal]:
    footer = [Decimal("0")] * width
    for row in rows:
        for i, cell in enumerate(row.cells):
            if cell is not NO_DATA:
                footer[i] += cell
    return footer


def weekly_summary(reports: Sequence[MasterWeeklyReport]) -> PivotTable:
    """Masters x work types; the trailing column is each master's reported total."""
    names = sorted({e.work_type_name for r in reports for e in r.earnings})

    rows: list[PivotRow] = []
    for report in reports:
        by_name = {e.work_type_name: e.total_earnings for e in report.earnings}
        cells: list[Cell] = [by_name.get(name, NO_DATA) for name in names]
        cells.append(report.total_master_earnings)
        rows.append(
            PivotRow(
                key=report.master_id,
                label=f"{report.master_first_name} {report.master_last_name}".strip(),
                cells=cells,
            )
        )

    columns = names + [TOTAL_LABEL]
    return PivotTable(columns=columns, rows=rows, footer=_footer(rows, len(columns)))


def master_detail(report: MasterDetailReport) -> PivotTable:
    """Work types x orders for one master, orders by execution date."""
    seen: dict[int, OrderColumn] = {}
    for detail in report.report_details:
        for e in detail.earnings_by_order:
            if e.order_id not in seen:
                seen[e.order_id] = OrderColumn(e.order_id, e.client_name, e.execution_date)
    # sorted() is stable, so equal dates keep first-appearance order
    order_columns = sorted(seen.values(), key=lambda c: c.execution_date)

    rows: list[PivotRow] = []
    for detail in report.report_details:
        by_order = {e.order_id: e.earning for e in detail.earnings_by_order}
        cells: list[Cell] = [by_order.get(c.order_id, NO_DATA) for c in order_columns]
        cells.append(sum((c for c in cells if c is not NO_DATA), Decimal("0")))
        rows.append(PivotRow(key=detail.work_type_id, label=detail.work_type_name, cells=cells))

    columns = [c.label for c in order_columns] + [TOTAL_LABEL]
    return PivotTable(
        columns=columns,
        rows=rows,
        footer=_footer(rows, len(columns)),
        order_columns=order_columns,
    )
