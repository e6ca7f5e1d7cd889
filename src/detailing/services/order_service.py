from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Iterator, Optional, TypeVar

from ..api import ApiError, ApiSession
from ..domain import (
    ROLE_MASTER,
    CarBrand,
    InfoSource,
    MasterAssignment,
    Order,
    Part,
    Selected,
    Selection,
    User,
    Work,
    WorkType,
    select_by_id,
    selected_or_none,
    to_decimal,
)
from ..repositories.dictionary_repo import DictionaryRepository
from ..repositories.order_repo import OrderRepository
from ..repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLIENT_NAME_REQUIRED = "Введите имя клиента"
CLIENT_PHONE_REQUIRED = "Введите телефон"
CAR_BRAND_REQUIRED = "Выберите марку автомобиля"
EXECUTION_DATE_REQUIRED = "Укажите дату выполнения"
ORDER_COST_REQUIRED = "Введите стоимость заказа"
NEGATIVE_COST = "Стоимость не может быть отрицательной"
WORKS_REQUIRED = "Выберите хотя бы один тип работ"
WORK_TYPE_REQUIRED = "Выберите тип работы"
WORK_COST_REQUIRED = "Укажите стоимость работы"
PART_NOT_ALLOWED = "Запчасть не относится к выбранному типу работ"
MASTER_REQUIRED = "Выберите мастера"
PERCENT_REQUIRED = "Укажите процент"
PERCENT_NEGATIVE = "Процент не может быть отрицательным"
PERCENT_TOO_BIG = "Процент не может быть больше 100"

STATUS_LABELS = {
    "NEW": "Новый",
    "IN_PROGRESS": "В работе",
    "COMPLETED": "Завершён",
    "CANCELLED": "Отменён",
}

TRANSITIONS: dict[str, tuple[str, ...]] = {
    "NEW": ("IN_PROGRESS", "CANCELLED"),
    "IN_PROGRESS": ("COMPLETED",),
    "COMPLETED": (),
    "CANCELLED": (),
}


class ValidationError(Exception):
    """Field path -> message, e.g. ``works[2].assignments[0].salaryPercent``."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{path}: {msg}" for path, msg in self.errors.items()))


class FormStateError(Exception):
    pass


@dataclass
class FormDictionaries:
    brands: list[CarBrand] = field(default_factory=list)
    work_types: list[WorkType] = field(default_factory=list)
    masters: list[User] = field(default_factory=list)
    info_sources: list[InfoSource] = field(default_factory=list)
    parts_by_code: dict[str, list[Part]] = field(default_factory=dict)


def validate_order(order: Order, dictionaries: FormDictionaries) -> dict[str, str]:
    errors: dict[str, str] = {}

    if not order.client_name.strip():
        errors["clientName"] = CLIENT_NAME_REQUIRED
    if not order.client_phone.strip():
        errors["clientPhone"] = CLIENT_PHONE_REQUIRED
    if not isinstance(order.car_brand, Selected):
        errors["carBrand"] = CAR_BRAND_REQUIRED
    if order.execution_date is None:
        errors["executionDate"] = EXECUTION_DATE_REQUIRED
    if order.order_cost is None:
        errors["orderCost"] = ORDER_COST_REQUIRED
    elif order.order_cost < 0:
        errors["orderCost"] = NEGATIVE_COST

    if not order.works:
        errors["works"] = WORKS_REQUIRED

    for i, work in enumerate(order.works):
        prefix = f"works[{i}]"
        work_type = selected_or_none(work.work_type)
        if work_type is None:
            errors[f"{prefix}.workType"] = WORK_TYPE_REQUIRED

        if work.cost is None:
            errors[f"{prefix}.cost"] = WORK_COST_REQUIRED
        elif work.cost < 0:
            errors[f"{prefix}.cost"] = NEGATIVE_COST

        # an empty or failed parts fetch only matters if parts were picked
        allowed = {p.id for p in dictionaries.parts_by_code.get(work_type.code, ())} if work_type else set()
        for j, part in enumerate(work.parts):
            if part.id not in allowed:
                errors[f"{prefix}.parts[{j}]"] = PART_NOT_ALLOWED

        for k, assignment in enumerate(work.assignments):
            path = f"{prefix}.assignments[{k}]"
            if not isinstance(assignment.master, Selected):
                errors[f"{path}.master"] = MASTER_REQUIRED
            percent = assignment.salary_percent
            if percent is None:
                errors[f"{path}.salaryPercent"] = PERCENT_REQUIRED
            elif percent < 0:
                errors[f"{path}.salaryPercent"] = PERCENT_NEGATIVE
            elif percent > 100:
                errors[f"{path}.salaryPercent"] = PERCENT_TOO_BIG

    return errors


def ensure_valid(order: Order, dictionaries: FormDictionaries) -> None:
    errors = validate_order(order, dictionaries)
    if errors:
        raise ValidationError(errors)


def _resolve(selection: Selection[T], entities: Iterable[T]) -> Selection[T]:
    entity = selected_or_none(selection)
    if entity is None:
        return selection
    found = select_by_id(entities, getattr(entity, "id", None))
    return found if isinstance(found, Selected) else selection


class OrderFormSession:
    """State of one order form: loaded dictionaries, memoized parts and
    in-flight request groups.

    Dictionaries must be loaded before an existing order is populated, and
    nothing is submitted while a fetch is still running. Once closed, late
    results are dropped instead of being applied.
    """

    def __init__(
        self,
        api: ApiSession,
        *,
        order_repo: OrderRepository,
        dictionary_repo: DictionaryRepository,
        user_repo: UserRepository,
    ) -> None:
        self.api = api
        self.order_repo = order_repo
        self.dictionary_repo = dictionary_repo
        self.user_repo = user_repo

        self.dictionaries = FormDictionaries()
        self.dictionaries_loaded = False
        self.in_flight: set[str] = set()
        self.closed = False

    @property
    def busy(self) -> bool:
        return bool(self.in_flight)

    def close(self) -> None:
        self.closed = True

    def _ensure_open(self) -> None:
        if self.closed:
            raise FormStateError("Order form session is closed.")

    @contextmanager
    def _loading(self, group: str) -> Iterator[None]:
        self.in_flight.add(group)
        try:
            yield
        finally:
            self.in_flight.discard(group)

    def load_dictionaries(self) -> FormDictionaries:
        self._ensure_open()
        with self._loading("dictionaries"), ThreadPoolExecutor(max_workers=4) as pool:
            brands = pool.submit(self.dictionary_repo.list_car_brands, self.api)
            work_types = pool.submit(self.dictionary_repo.list_by_type, self.api, WorkType.kind)
            masters = pool.submit(self.user_repo.list_by_role, self.api, ROLE_MASTER)
            info_sources = pool.submit(self.dictionary_repo.list_by_type, self.api, InfoSource.kind)
            loaded = FormDictionaries(
                brands=brands.result(),
                work_types=[w for w in work_types.result() if isinstance(w, WorkType)],
                masters=masters.result(),
                info_sources=[s for s in info_sources.result() if isinstance(s, InfoSource)],
            )

        if self.closed:
            logger.debug("Form closed while dictionaries were loading; result dropped.")
            return self.dictionaries

        loaded.parts_by_code = self.dictionaries.parts_by_code
        self.dictionaries = loaded
        self.dictionaries_loaded = True
        return loaded

    def parts_for(self, work_type: WorkType) -> list[Part]:
        self._ensure_open()
        cached = self.dictionaries.parts_by_code.get(work_type.code)
        if cached is not None:
            return cached
        if not work_type.code:
            return []

        with self._loading(f"parts:{work_type.code}"):
            try:
                rows = self.dictionary_repo.list_by_type(self.api, work_type.code)
                parts = [p for p in rows if isinstance(p, Part)]
            except ApiError as e:
                logger.warning("Parts for work type %s not loaded: %s", work_type.code, e)
                parts = []

        if self.closed:
            return parts
        self.dictionaries.parts_by_code[work_type.code] = parts
        return parts

    def new_order(self) -> Order:
        return Order()

    def load_order(self, order_id: int) -> Optional[Order]:
        self._ensure_open()
        if not self.dictionaries_loaded:
            raise FormStateError("Dictionaries must be loaded before an order can be populated.")

        with self._loading("order"):
            order = self.order_repo.get(self.api, order_id)
        if self.closed:
            logger.debug("Form closed while order #%s was loading; result dropped.", order_id)
            return None

        d = self.dictionaries
        order.car_brand = _resolve(order.car_brand, d.brands)
        order.info_source = _resolve(order.info_source, d.info_sources)
        for work in order.works:
            for assignment in work.assignments:
                assignment.master = _resolve(assignment.master, d.masters)
            work_type = selected_or_none(work.work_type)
            if work_type is not None:
                self.parts_for(work_type)
        return order

    # Edits

    def toggle_work_type(self, order: Order, work_type_id: int, checked: bool) -> None:
        index = order.work_index(work_type_id)
        if not checked:
            if index is not None:
                del order.works[index]
            return
        if index is not None:
            return

        work_type = selected_or_none(select_by_id(self.dictionaries.work_types, work_type_id))
        if work_type is None:
            raise ValueError(f"Unknown work type id={work_type_id}")
        order.works.append(Work(work_type=Selected(work_type), comment="", cost=Decimal("0")))
        self.parts_for(work_type)

    def toggle_part(self, order: Order, work_type_id: int, part_id: int, checked: bool) -> None:
        index = order.work_index(work_type_id)
        if index is None:
            return
        work = order.works[index]
        work_type = selected_or_none(work.work_type)
        part = selected_or_none(select_by_id(self.dictionaries.parts_by_code.get(work_type.code, ()), part_id))
        if part is None:
            return
        work.parts = [p for p in work.parts if p.id != part_id]
        if checked:
            work.parts.append(part)

    def toggle_master(self, order: Order, work_index: int, master_id: int, checked: bool) -> None:
        work = order.works[work_index]
        exists = any(_master_id(a) == master_id for a in work.assignments)
        if not checked:
            work.assignments = [a for a in work.assignments if _master_id(a) != master_id]
            return
        if exists:
            return
        master = select_by_id(self.dictionaries.masters, master_id)
        if not isinstance(master, Selected):
            raise ValueError(f"Unknown master id={master_id}")
        work.assignments.append(MasterAssignment(master=master, salary_percent=Decimal("0")))

    def set_salary_percent(self, order: Order, work_index: int, master_id: int, value: object) -> None:
        for assignment in order.works[work_index].assignments:
            if _master_id(assignment) == master_id:
                assignment.salary_percent = to_decimal(value)

    def set_work_cost(self, order: Order, work_index: int, value: object) -> None:
        order.works[work_index].cost = to_decimal(value)

    def set_work_comment(self, order: Order, work_index: int, comment: str | None) -> None:
        order.works[work_index].comment = comment

    # Submit

    def validate(self, order: Order) -> dict[str, str]:
        return validate_order(order, self.dictionaries)

    def submit(self, order: Order) -> Optional[int]:
        self._ensure_open()
        if self.in_flight:
            raise FormStateError(f"Still loading: {', '.join(sorted(self.in_flight))}")
        if not self.dictionaries_loaded:
            raise FormStateError("Dictionaries are not loaded.")
        ensure_valid(order, self.dictionaries)

        if order.id is None:
            new_id = self.order_repo.create(self.api, order)
            logger.info("Order created id=%s", new_id)
            return new_id
        self.order_repo.update(self.api, order.id, order)
        logger.info("Order updated id=%s", order.id)
        return order.id


def _master_id(assignment: MasterAssignment) -> Optional[int]:
    master = selected_or_none(assignment.master)
    return master.id if master else None


# Status transitions are server-authoritative; these only decide what to offer.


def available_transitions(status: str) -> tuple[str, ...]:
    return TRANSITIONS.get(status, ())


def can_cancel(status: str) -> bool:
    return status not in ("COMPLETED", "CANCELLED", "IN_PROGRESS")


def request_status_change(
    api: ApiSession,
    order_repo: OrderRepository,
    *,
    order_id: int,
    current_status: str,
    code: str,
    master_id: int | None = None,
) -> None:
    if code not in available_transitions(current_status) or (code == "CANCELLED" and not can_cancel(current_status)):
        raise ValidationError(
            {"status": f"Нельзя перевести заказ из статуса «{STATUS_LABELS.get(current_status, current_status)}» "
                       f"в «{STATUS_LABELS.get(code, code)}»"}
        )
    order_repo.change_status(api, order_id=order_id, code=code, master_id=master_id)
    logger.info("Order %s status %s -> %s requested", order_id, current_status, code)
