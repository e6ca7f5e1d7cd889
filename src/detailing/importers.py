from __future__ import annotations

import json
from pathlib import Path

from .api import ApiSession
from .services.dictionary_service import DictionaryService, add_part, part_code


class DataImportError(Exception):
    pass


def import_work_types_json(api: ApiSession, path: str | Path, service: DictionaryService) -> int:
    """Create work types with their parts from a JSON list.

    Each entry looks like ``{"name": "Полировка", "code": "POLISH", "parts": ["Капот", "Крыша"]}``.
    Work types whose code already exists get the missing parts appended.
    """
    p = Path(path)
    if not p.exists():
        raise DataImportError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise DataImportError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise DataImportError("JSON must be a list of objects")

    count = 0
    for obj in data:
        if not isinstance(obj, dict):
            continue
        name = str(obj.get("name", "")).strip()
        code = str(obj.get("code", "")).strip()
        if not name or not code:
            continue

        existing = {n.code: n for n in service.load_tree(api)}
        if code not in existing:
            service.add_work_type(api, name=name, code=code)
            existing = {n.code: n for n in service.load_tree(api)}
        node = existing.get(code)
        if node is None:
            raise DataImportError(f"Work type {code} was not created by the server")

        known = {part.code for part in node.parts}
        added = 0
        for part_name in obj.get("parts") or ():
            part_name = str(part_name).strip()
            if part_name and part_code(part_name) not in known:
                add_part(node, part_name)
                known.add(part_code(part_name))
                added += 1
        if added:
            service.save_work_type(api, node)
        count += 1
    return count
