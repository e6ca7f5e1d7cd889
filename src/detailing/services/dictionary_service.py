from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from ..api import ApiSession
from ..domain import InfoSource, WorkType
from ..repositories.dictionary_repo import DictionaryRepository
from .order_service import ValidationError

logger = logging.getLogger(__name__)

NAME_REQUIRED = "Введите название"
CODE_REQUIRED = "Введите код"
PART_EXISTS = "Такая запчасть уже есть"


@dataclass
class PartNode:
    name: str
    code: str
    active: bool = True
    id: Optional[int] = None


@dataclass
class WorkTypeNode:
    id: int
    name: str
    code: str
    description: str = ""
    active: bool = True
    parts: list[PartNode] = field(default_factory=list)


def part_code(name: str) -> str:
    return re.sub(r"\s", "_", name.strip().upper())


def build_work_type_tree(rows: list[dict]) -> list[WorkTypeNode]:
    """Group the flat dictionary listing into work types with their parts.

    A part row carries its parent work type's code in ``type``.
    """
    parts_by_parent: dict[str, list[PartNode]] = {}
    for row in rows:
        tag = row.get("type")
        if tag in (WorkType.kind, InfoSource.kind) or not tag:
            continue
        parts_by_parent.setdefault(str(tag), []).append(
            PartNode(
                id=row.get("id"),
                name=str(row.get("name", "")),
                code=str(row.get("code", "")),
                active=bool(row.get("active", True)),
            )
        )

    return [
        WorkTypeNode(
            id=int(row["id"]),
            name=str(row.get("name", "")),
            code=str(row.get("code", "")),
            description=str(row.get("description") or ""),
            active=bool(row.get("active", True)),
            parts=parts_by_parent.get(str(row.get("code")), []),
        )
        for row in rows
        if row.get("type") == WorkType.kind
    ]


def work_type_payload(node: WorkTypeNode, *, with_parts: bool = True) -> dict:
    payload = {
        "id": node.id,
        "name": node.name.strip(),
        "code": node.code.strip(),
        "description": node.description,
        "active": node.active,
        "type": WorkType.kind,
    }
    if with_parts:
        payload["parts"] = [
            {
                **({"id": p.id} if p.id is not None else {}),
                "name": p.name,
                "code": p.code,
                "active": p.active,
                "type": node.code.strip(),
            }
            for p in node.parts
        ]
    return payload


def _require_name_and_code(name: str, code: str) -> None:
    errors = {}
    if not name.strip():
        errors["name"] = NAME_REQUIRED
    if not code.strip():
        errors["code"] = CODE_REQUIRED
    if errors:
        raise ValidationError(errors)


def add_part(node: WorkTypeNode, name: str) -> PartNode:
    if not name.strip():
        raise ValidationError({"newPart": NAME_REQUIRED})
    code = part_code(name)
    if any(p.code == code for p in node.parts):
        raise ValidationError({"newPart": PART_EXISTS})
    part = PartNode(name=name.strip(), code=code)
    node.parts.append(part)
    return part


def rename_part(node: WorkTypeNode, index: int, name: str) -> None:
    if not name.strip():
        raise ValidationError({f"parts[{index}].name": NAME_REQUIRED})
    part = node.parts[index]
    part.name = name.strip()
    part.code = part_code(name)


def toggle_part_active(node: WorkTypeNode, index: int) -> None:
    node.parts[index].active = not node.parts[index].active


class DictionaryService:
    def __init__(self, dictionary_repo: DictionaryRepository) -> None:
        self.dictionary_repo = dictionary_repo

    def load_tree(self, api: ApiSession) -> list[WorkTypeNode]:
        return build_work_type_tree(self.dictionary_repo.list_all(api))

    def get(self, api: ApiSession, work_type_id: int) -> Optional[WorkTypeNode]:
        return next((n for n in self.load_tree(api) if n.id == work_type_id), None)

    def add_work_type(self, api: ApiSession, *, name: str, code: str) -> None:
        _require_name_and_code(name, code)
        self.dictionary_repo.add_work_type(api, name=name.strip(), code=code.strip())
        logger.info("Work type %s added", code.strip())

    def save_work_type(self, api: ApiSession, node: WorkTypeNode) -> None:
        _require_name_and_code(node.name, node.code)
        self.dictionary_repo.update_work_type(api, work_type_payload(node))
        logger.info("Work type %s saved with %d parts", node.code, len(node.parts))

    def toggle_active(self, api: ApiSession, node: WorkTypeNode) -> None:
        node.active = not node.active
        self.dictionary_repo.update_work_type(api, work_type_payload(node, with_parts=False))

    def delete_work_type(self, api: ApiSession, work_type_id: int) -> None:
        self.dictionary_repo.delete_work_type(api, work_type_id)
        logger.info("Work type id=%s deleted", work_type_id)
