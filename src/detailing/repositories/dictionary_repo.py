from __future__ import annotations

from ..api import ApiSession
from ..domain import CarBrand, DictionaryEntry
from ..mapping import car_brand_from_api, dictionary_by_type_from_api

WORK_TYPES_ENDPOINT = "/dictionary/work-types"


class DictionaryRepository:
    def list_car_brands(self, api: ApiSession) -> list[CarBrand]:
        brands = [car_brand_from_api(r) for r in api.get("/car/car-brands") or ()]
        return sorted(brands, key=lambda b: b.name.casefold())

    def list_by_type(self, api: ApiSession, code: str) -> list[DictionaryEntry]:
        return dictionary_by_type_from_api(api.get(f"/dictionary/type/{code}") or [], code)

    def list_all(self, api: ApiSession) -> list[dict]:
        # flat rows; grouping into work types with parts is done by the caller
        return list(api.get("/dictionary") or ())

    def add_work_type(self, api: ApiSession, *, name: str, code: str) -> dict | None:
        return api.post(WORK_TYPES_ENDPOINT, json={"name": name, "code": code, "type": "WORK_TYPE"})

    def update_work_type(self, api: ApiSession, payload: dict) -> dict | None:
        return api.put(f"{WORK_TYPES_ENDPOINT}/{payload['id']}", json=payload)

    def delete_work_type(self, api: ApiSession, work_type_id: int) -> None:
        api.delete(f"{WORK_TYPES_ENDPOINT}/{work_type_id}")
