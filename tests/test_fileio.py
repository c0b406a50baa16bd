from pathlib import Path

import pytest

from agentic.errors import StructuralParseError
from agentic.fileio import (
    atomic_write_text,
    dump_json,
    dump_yaml,
    load_json_mapping,
    load_yaml_mapping,
    read_text,
)


def test_atomic_write_creates_parents_and_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "doc.txt"

    atomic_write_text(target, "first\n")
    atomic_write_text(target, "second\n")

    assert target.read_text(encoding="utf-8") == "second\n"
    assert [path.name for path in target.parent.iterdir()] == ["doc.txt"]


def test_missing_documents_read_as_none(tmp_path: Path) -> None:
    assert read_text(tmp_path / "absent.txt") is None
    assert load_yaml_mapping(tmp_path / "absent.yaml") is None
    assert load_json_mapping(tmp_path / "absent.json") is None


def test_yaml_documents_keep_key_order(tmp_path: Path) -> None:
    path = tmp_path / "doc.yaml"

    dump_yaml(path, {"tasks": [{"id": "TASK-1", "title": "Ünïcode"}]})

    assert path.read_text(encoding="utf-8").startswith("tasks:\n- id: TASK-1\n  title: Ünïcode")
    assert load_yaml_mapping(path) == {"tasks": [{"id": "TASK-1", "title": "Ünïcode"}]}


def test_empty_yaml_document_is_an_empty_mapping(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_yaml_mapping(path) == {}


@pytest.mark.parametrize("content", ["- a\n- b\n", "key: [unclosed\n"])
def test_non_mapping_or_malformed_yaml_is_structural(tmp_path: Path, content: str) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(StructuralParseError) as info:
        load_yaml_mapping(path)

    assert info.value.path == path


def test_json_round_trip_and_errors(tmp_path: Path) -> None:
    path = tmp_path / "doc.json"
    dump_json(path, {"iteration": 1})

    assert path.read_text(encoding="utf-8").endswith("}\n")
    assert load_json_mapping(path) == {"iteration": 1}

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(StructuralParseError, match="expected a JSON object"):
        load_json_mapping(path)


def test_undecodable_document_is_structural(tmp_path: Path) -> None:
    path = tmp_path / "doc.yaml"
    path.write_bytes(b"key: caf\xe9\n")

    with pytest.raises(StructuralParseError, match="not valid UTF-8") as info:
        read_text(path)

    assert info.value.path == path
    with pytest.raises(StructuralParseError):
        load_yaml_mapping(path)
