# tests/test_importers.py
import json
from unittest.mock import MagicMock

import pytest

from detailing.importers import DataImportError, import_work_types_json
from detailing.services.dictionary_service import DictionaryService, WorkTypeNode

API = object()


@pytest.fixture
def service():
    tree = [WorkTypeNode(id=10, name="Мойка", code="WASH")]
    service = MagicMock(spec=DictionaryService)
    service.load_tree.side_effect = lambda api: list(tree)

    def add(api, *, name, code):
        tree.append(WorkTypeNode(id=10 + len(tree), name=name, code=code))

    service.add_work_type.side_effect = add
    return service


def write(tmp_path, data):
    path = tmp_path / "work_types.json"
    path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
    return path


def test_creates_missing_types_and_appends_parts(tmp_path, service):
    path = write(
        tmp_path,
        [
            {"name": "Мойка", "code": "WASH", "parts": ["Капот"]},
            {"name": "Полировка", "code": "POLISH", "parts": ["Капот", "Крыша"]},
            {"name": "", "code": "SKIPPED"},
            "not an object",
        ],
    )

    assert import_work_types_json(API, path, service) == 2

    service.add_work_type.assert_called_once_with(API, name="Полировка", code="POLISH")
    saved = [c.args[1] for c in service.save_work_type.call_args_list]
    assert [n.code for n in saved] == ["WASH", "POLISH"]
    assert [p.code for p in saved[1].parts] == ["КАПОТ", "КРЫША"]


def test_missing_file(tmp_path, service):
    with pytest.raises(DataImportError, match="File not found"):
        import_work_types_json(API, tmp_path / "nope.json", service)


def test_rejects_non_list(tmp_path, service):
    with pytest.raises(DataImportError, match="must be a list"):
        import_work_types_json(API, write(tmp_path, {"name": "x"}), service)


def test_rejects_broken_json(tmp_path, service):
    path = tmp_path / "broken.json"
    path.write_text("[{", encoding="utf-8")
    with pytest.raises(DataImportError, match="Invalid JSON"):
        import_work_types_json(API, path, service)
