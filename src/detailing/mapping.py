"""Translation between the backend's camelCase JSON and domain objects.

Every response passes through one of the ``*_from_api`` functions; a payload
that does not have the expected shape raises ApiError instead of leaking
half-parsed dicts into the rest of the application.
"""
from __future__ import annotations

import functools
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, TypeVar

from .api import ApiError
from .domain import (
    UNSELECTED,
    CarBrand,
    DictionaryEntry,
    InfoSource,
    MasterAssignment,
    MasterDetailEarning,
    MasterDetailReport,
    MasterWeeklyReport,
    Order,
    OrderEarning,
    Part,
    Role,
    Selected,
    User,
    Work,
    WorkType,
    WorkTypeEarning,
    selected_or_none,
    to_decimal,
)

DATE_FORMAT = "%Y-%m-%dT%H:%M"

F = TypeVar("F", bound=Callable[..., Any])


def _boundary(func: F) -> F:
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ApiError(f"Malformed response in {func.__name__}: {e!r}") from e

    return wrapper  # type: ignore[return-value]


def parse_datetime(value: str) -> datetime:
    """Parse an ISO timestamp into naive local time; zoned values are converted first."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_datetime(value: datetime) -> str:
    return value.strftime(DATE_FORMAT)


def _number(value: Decimal | None) -> int | float | None:
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Dictionaries


@_boundary
def car_brand_from_api(raw: dict) -> CarBrand:
    return CarBrand(id=int(raw["id"]), name=str(raw["name"]))


def car_brand_to_api(brand: CarBrand) -> dict:
    return {"id": brand.id, "name": brand.name}


@_boundary
def work_type_from_api(raw: dict) -> WorkType:
    return WorkType(
        id=int(raw["id"]),
        code=str(raw["code"]),
        name=str(raw["name"]),
        active=bool(raw.get("active", True)),
    )


@_boundary
def part_from_api(raw: dict, work_type_code: str) -> Part:
    return Part(
        id=int(raw["id"]),
        code=str(raw["code"]),
        name=str(raw["name"]),
        active=bool(raw.get("active", True)),
        work_type_code=work_type_code,
    )


@_boundary
def info_source_from_api(raw: dict) -> InfoSource:
    return InfoSource(
        id=int(raw["id"]),
        name=str(raw["name"]),
        code=str(raw.get("code") or ""),
        active=bool(raw.get("active", True)),
    )


def dictionary_entry_to_api(entry: DictionaryEntry) -> dict:
    if isinstance(entry, InfoSource):
        return {"id": entry.id, "name": entry.name, "code": entry.code, "active": entry.active}
    if isinstance(entry, (WorkType, Part)):
        return {"id": entry.id, "code": entry.code, "name": entry.name, "active": entry.active}
    raise TypeError(f"Unsupported dictionary entry: {entry!r}")


def dictionary_entry_from_api(raw: dict, work_type_codes: Iterable[str] = ()) -> DictionaryEntry:
    """Classify one row of the flat ``/dictionary`` listing by its ``type`` tag."""
    tag = raw.get("type")
    if tag == WorkType.kind:
        return work_type_from_api(raw)
    if tag == InfoSource.kind:
        return info_source_from_api(raw)
    if tag in set(work_type_codes):
        return part_from_api(raw, str(tag))
    raise ApiError(f"Unknown dictionary entry type: {tag!r}")


def dictionary_by_type_from_api(rows: list[dict], code: str) -> list[DictionaryEntry]:
    """Rows of ``/dictionary/type/{code}``: the code decides the entry kind."""
    if not isinstance(rows, list):
        raise ApiError(f"Expected a list for dictionary type {code!r}")
    if code == WorkType.kind:
        return [work_type_from_api(r) for r in rows]
    if code == InfoSource.kind:
        return [info_source_from_api(r) for r in rows]
    return [part_from_api(r, code) for r in rows]


# Users


@_boundary
def role_from_api(raw: dict) -> Role:
    return Role(id=int(raw["id"]), name=str(raw["name"]))


def role_to_api(role: Role) -> dict:
    return {"id": role.id, "name": role.name}


@_boundary
def user_from_api(raw: dict) -> User:
    return User(
        id=int(raw["id"]),
        username=str(raw["username"]),
        first_name=str(raw.get("firstName") or ""),
        last_name=str(raw.get("lastName") or ""),
        phone=raw.get("phone"),
        roles=tuple(role_from_api(r) for r in raw.get("roles") or ()),
    )


def user_to_api(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "phone": user.phone,
        "roles": [role_to_api(r) for r in user.roles],
    }


# Orders


@_boundary
def assignment_from_api(raw: dict) -> MasterAssignment:
    master = raw.get("master")
    return MasterAssignment(
        master=Selected(user_from_api(master)) if master else UNSELECTED,
        salary_percent=to_decimal(raw.get("salaryPercent")),
        id=raw.get("id"),
    )


def assignment_to_api(assignment: MasterAssignment) -> dict:
    master = selected_or_none(assignment.master)
    out: dict = {}
    if assignment.id is not None:
        out["id"] = assignment.id
    out["master"] = user_to_api(master) if master else None
    out["salaryPercent"] = _number(assignment.salary_percent)
    return out


@_boundary
def work_from_api(raw: dict) -> Work:
    wt_raw = raw.get("workType")
    work_type = work_type_from_api(wt_raw) if wt_raw else None
    code = work_type.code if work_type else ""
    return Work(
        work_type=Selected(work_type) if work_type else UNSELECTED,
        parts=[part_from_api(p, code) for p in raw.get("parts") or ()],
        comment=raw.get("comment"),
        cost=to_decimal(raw.get("cost")),
        assignments=[assignment_from_api(a) for a in raw.get("assignments") or ()],
        id=raw.get("id"),
    )


def work_to_api(work: Work) -> dict:
    work_type = selected_or_none(work.work_type)
    out: dict = {}
    if work.id is not None:
        out["id"] = work.id
    out["workType"] = dictionary_entry_to_api(work_type) if work_type else None
    out["parts"] = [dictionary_entry_to_api(p) for p in work.parts]
    out["comment"] = work.comment
    out["cost"] = _number(work.cost)
    out["assignments"] = [assignment_to_api(a) for a in work.assignments]
    return out


@_boundary
def order_from_api(raw: dict) -> Order:
    brand = raw.get("carBrand")
    info = raw.get("infoSource")
    date = raw.get("executionDate")
    return Order(
        id=raw.get("id"),
        client_name=str(raw["clientName"]),
        client_phone=str(raw["clientPhone"]),
        car_brand=Selected(car_brand_from_api(brand)) if brand else UNSELECTED,
        vin=raw.get("vin"),
        works=[work_from_api(w) for w in raw.get("works") or ()],
        info_source=Selected(info_source_from_api(info)) if info else UNSELECTED,
        execution_date=parse_datetime(date) if date else None,
        order_cost=to_decimal(raw.get("orderCost")),
        execution_time_by_master=raw.get("executionTimeByMaster"),
        status=raw.get("status") or "NEW",
    )


def order_to_payload(order: Order) -> dict:
    """Full order body for create and update; there is no partial save."""
    brand = selected_or_none(order.car_brand)
    info = selected_or_none(order.info_source)
    out: dict = {}
    if order.id is not None:
        out["id"] = order.id
    out.update(
        {
            "clientName": order.client_name,
            "clientPhone": order.client_phone,
            "carBrand": car_brand_to_api(brand) if brand else None,
            "vin": order.vin,
            "works": [work_to_api(w) for w in order.works],
            "infoSource": dictionary_entry_to_api(info) if info else None,
            "executionDate": format_datetime(order.execution_date) if order.execution_date else None,
            "orderCost": _number(order.order_cost),
            "executionTimeByMaster": order.execution_time_by_master,
            "status": order.status,
        }
    )
    return out


# Reports


@_boundary
def weekly_report_from_api(raw: dict) -> MasterWeeklyReport:
    return MasterWeeklyReport(
        master_id=int(raw["masterId"]),
        master_first_name=str(raw.get("masterFirstName") or ""),
        master_last_name=str(raw.get("masterLastName") or ""),
        earnings=tuple(
            WorkTypeEarning(
                work_type_id=e.get("workTypeId"),
                work_type_name=str(e["workTypeName"]),
                total_earnings=to_decimal(e["totalEarnings"]),
            )
            for e in raw.get("earnings") or ()
        ),
        total_master_earnings=to_decimal(raw.get("totalMasterEarnings")) or Decimal("0"),
    )


@_boundary
def detail_report_from_api(raw: dict) -> MasterDetailReport:
    return MasterDetailReport(
        master_id=int(raw["masterId"]),
        master_first_name=str(raw.get("masterFirstName") or ""),
        master_last_name=str(raw.get("masterLastName") or ""),
        report_details=tuple(
            MasterDetailEarning(
                work_type_id=int(d["workTypeId"]),
                work_type_name=str(d["workTypeName"]),
                earnings_by_order=tuple(
                    OrderEarning(
                        order_id=int(o["orderId"]),
                        client_name=str(o.get("clientName") or ""),
                        execution_date=parse_datetime(o["executionDate"]),
                        earning=to_decimal(o["earning"]),
                    )
                    for o in d.get("earningsByOrder") or ()
                ),
            )
            for d in raw.get("reportDetails") or ()
        ),
    )
