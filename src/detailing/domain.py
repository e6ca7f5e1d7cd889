from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import ClassVar, Generic, Iterable, Literal, Optional, TypeVar, Union

OrderStatus = Literal["NEW", "IN_PROGRESS", "COMPLETED", "CANCELLED"]
ORDER_STATUSES: tuple[str, ...] = ("NEW", "IN_PROGRESS", "COMPLETED", "CANCELLED")

ROLE_MANAGER = "MANAGER"
ROLE_ADMIN = "ADMIN"
ROLE_MASTER = "MASTER"

CENT = Decimal("0.01")

T = TypeVar("T")


# Entity references in form state: either something was picked or nothing was.


@dataclass(frozen=True)
class Selected(Generic[T]):
    entity: T


@dataclass(frozen=True)
class Unselected:
    def __bool__(self) -> bool:
        return False


UNSELECTED = Unselected()

Selection = Union[Selected[T], Unselected]


def selected_or_none(selection: Selection[T]) -> Optional[T]:
    if isinstance(selection, Selected):
        return selection.entity
    return None


def select_by_id(entities: Iterable[T], entity_id: int | None) -> Selection[T]:
    if entity_id is None:
        return UNSELECTED
    for entity in entities:
        if getattr(entity, "id", None) == entity_id:
            return Selected(entity)
    return UNSELECTED


def to_decimal(value: object) -> Optional[Decimal]:
    """Convert user or JSON input to Decimal; None and blank strings stay None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    text = str(value).strip().replace(",", ".")
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e


def earning(cost: Decimal | None, salary_percent: Decimal | None) -> Decimal:
    """Master's share of a work item, rounded half-up to cents."""
    c = cost if cost is not None else Decimal("0")
    p = salary_percent if salary_percent is not None else Decimal("0")
    return (c * p / Decimal(100)).quantize(CENT, rounding=ROUND_HALF_UP)


# Dictionaries


@dataclass(frozen=True)
class CarBrand:
    id: int
    name: str


@dataclass(frozen=True)
class WorkType:
    kind: ClassVar[str] = "WORK_TYPE"

    id: int
    code: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class Part:
    kind: ClassVar[str] = "PART"

    id: int
    code: str
    name: str
    active: bool
    work_type_code: str


@dataclass(frozen=True)
class InfoSource:
    kind: ClassVar[str] = "INFO"

    id: int
    name: str
    code: str
    active: bool = True


DictionaryEntry = Union[WorkType, Part, InfoSource]


@dataclass(frozen=True)
class Role:
    id: int
    name: str


@dataclass(frozen=True)
class User:
    id: int
    username: str
    first_name: str
    last_name: str
    phone: Optional[str]
    roles: tuple[Role, ...] = ()

    @property
    def role_names(self) -> frozenset[str]:
        return frozenset(r.name for r in self.roles)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# Orders


@dataclass
class MasterAssignment:
    master: Selection[User] = UNSELECTED
    salary_percent: Optional[Decimal] = None
    id: Optional[int] = None

    def earning(self, cost: Decimal | None) -> Decimal:
        return earning(cost, self.salary_percent)


@dataclass
class Work:
    work_type: Selection[WorkType] = UNSELECTED
    parts: list[Part] = field(default_factory=list)
    comment: Optional[str] = None
    cost: Optional[Decimal] = None
    assignments: list[MasterAssignment] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def total_payout(self) -> Decimal:
        return sum((a.earning(self.cost) for a in self.assignments), Decimal("0.00"))


@dataclass
class Order:
    client_name: str = ""
    client_phone: str = ""
    car_brand: Selection[CarBrand] = UNSELECTED
    vin: Optional[str] = None
    works: list[Work] = field(default_factory=list)
    info_source: Selection[InfoSource] = UNSELECTED
    execution_date: Optional[datetime] = None
    order_cost: Optional[Decimal] = Decimal("0")
    execution_time_by_master: Optional[str] = None
    status: OrderStatus = "NEW"
    id: Optional[int] = None

    def work_index(self, work_type_id: int) -> Optional[int]:
        for i, w in enumerate(self.works):
            wt = selected_or_none(w.work_type)
            if wt is not None and wt.id == work_type_id:
                return i
        return None


@dataclass(frozen=True)
class CalendarEvent:
    id: int
    title: str
    start: datetime
    end: datetime
    client_name: str
    client_phone: str
    car_brand: Optional[CarBrand]
    work_types: tuple[str, ...]
    status: str


# Reports


@dataclass(frozen=True)
class WorkTypeEarning:
    work_type_id: Optional[int]
    work_type_name: str
    total_earnings: Decimal


@dataclass(frozen=True)
class MasterWeeklyReport:
    master_id: int
    master_first_name: str
    master_last_name: str
    earnings: tuple[WorkTypeEarning, ...]
    total_master_earnings: Decimal


@dataclass(frozen=True)
class OrderEarning:
    order_id: int
    client_name: str
    execution_date: datetime
    earning: Decimal


@dataclass(frozen=True)
class MasterDetailEarning:
    work_type_id: int
    work_type_name: str
    earnings_by_order: tuple[OrderEarning, ...]


@dataclass(frozen=True)
class MasterDetailReport:
    master_id: int
    master_first_name: str
    master_last_name: str
    report_details: tuple[MasterDetailEarning, ...]
