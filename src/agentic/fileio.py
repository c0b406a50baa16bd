from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from agentic.errors import StoreIOError, StructuralParseError


def atomic_write_text(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` via a same-directory temp file."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(temp_name, path)
        except BaseException:
            try:
                os.unlink(temp_name)
            except OSError:
                pass
            raise
    except OSError as exc:
        raise StoreIOError(f"failed to write {path}: {exc}", path=path) from exc


def read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError as exc:
        raise StructuralParseError(f"{path} is not valid UTF-8: {exc}", path=path) from exc
    except OSError as exc:
        raise StoreIOError(f"failed to read {path}: {exc}", path=path) from exc


def load_yaml_mapping(path: Path) -> dict[str, Any] | None:
    raw = read_text(path)
    if raw is None:
        return None
    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise StructuralParseError(f"malformed YAML in {path}: {exc}", path=path) from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise StructuralParseError(f"expected a mapping at the top of {path}", path=path)
    return payload


def dump_yaml(path: Path, payload: dict[str, Any]) -> None:
    rendered = yaml.safe_dump(
        payload, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    atomic_write_text(path, rendered)


def load_json_mapping(path: Path) -> dict[str, Any] | None:
    raw = read_text(path)
    if raw is None:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise StructuralParseError(f"malformed JSON in {path}: {exc}", path=path) from exc
    if not isinstance(payload, dict):
        raise StructuralParseError(f"expected a JSON object in {path}", path=path)
    return payload


def dump_json(path: Path, payload: dict[str, Any]) -> None:
    atomic_write_text(path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
