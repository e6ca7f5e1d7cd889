# tests/conftest.py
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from detailing.domain import (
    CarBrand,
    InfoSource,
    MasterAssignment,
    Order,
    Part,
    Role,
    Selected,
    User,
    Work,
    WorkType,
)
from detailing.repositories.dictionary_repo import DictionaryRepository
from detailing.repositories.order_repo import OrderRepository
from detailing.repositories.user_repo import UserRepository
from detailing.services.order_service import FormDictionaries

ADMIN = Role(1, "ADMIN")
MANAGER = Role(2, "MANAGER")
MASTER = Role(3, "MASTER")

BMW = CarBrand(1, "BMW")
AUDI = CarBrand(2, "Audi")

WASH = WorkType(10, "WASH", "Wash")
WAX = WorkType(11, "WAX", "Wax")

HOOD = Part(100, "HOOD", "Капот", True, "WASH")
ROOF = Part(101, "ROOF", "Крыша", True, "WASH")

INSTAGRAM = InfoSource(50, "Instagram", "INSTAGRAM")

ANNA = User(7, "anna", "Анна", "Мастерова", "+70000000007", (MASTER,))
BORIS = User(8, "boris", "Борис", "Мастеров", "+70000000008", (MASTER,))
MARIA = User(2, "maria", "Мария", "Менеджер", "+70000000002", (MANAGER,))
ROOT = User(1, "root", "Главный", "Админ", None, (ADMIN, MANAGER))


@pytest.fixture
def dictionaries():
    return FormDictionaries(
        brands=[AUDI, BMW],
        work_types=[WASH, WAX],
        masters=[ANNA, BORIS],
        info_sources=[INSTAGRAM],
        parts_by_code={"WASH": [HOOD, ROOF], "WAX": []},
    )


@pytest.fixture
def valid_order():
    return Order(
        client_name="Иван",
        client_phone="+79990000000",
        car_brand=Selected(BMW),
        execution_date=datetime(2024, 3, 13, 10, 0),
        order_cost=Decimal("5000"),
        works=[
            Work(
                work_type=Selected(WASH),
                parts=[HOOD],
                cost=Decimal("1500"),
                comment="",
                assignments=[MasterAssignment(master=Selected(ANNA), salary_percent=Decimal("30"))],
            )
        ],
    )


@pytest.fixture
def order_repo():
    return MagicMock(spec=OrderRepository)


@pytest.fixture
def dictionary_repo():
    repo = MagicMock(spec=DictionaryRepository)
    repo.list_car_brands.return_value = [AUDI, BMW]

    def by_type(api, code):
        return {
            "WORK_TYPE": [WASH, WAX],
            "INFO": [INSTAGRAM],
            "WASH": [HOOD, ROOF],
        }.get(code, [])

    repo.list_by_type.side_effect = by_type
    return repo


@pytest.fixture
def user_repo():
    repo = MagicMock(spec=UserRepository)
    repo.list_by_role.return_value = [ANNA, BORIS]
    return repo


class FakeResponse:
    """Just enough of requests.Response for ApiSession."""

    def __init__(self, status_code=200, payload=None, content=None):
        self.status_code = status_code
        self._payload = payload
        if content is not None:
            self.content = content
        else:
            self.content = b"" if payload is None else b"{...}"

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload
