from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from agentic.errors import NotFoundError, StoreIOError
from agentic.fileio import atomic_write_text

logger = logging.getLogger(__name__)

CONTEXT_FILE = "context.md"
SOURCE_SUFFIXES = (".py", ".go", ".ts", ".js")

_PY_IMPORT_RE = re.compile(r"^\s*(?:from\s+([\w.]+)\s+import|import\s+([\w.]+))", re.MULTILINE)
_PY_SYMBOL_RE = re.compile(r"^(?:def|class)\s+([A-Za-z]\w*)", re.MULTILINE)
_QUOTED_IMPORT_RE = re.compile(r"""(?:import|from|require\()\s*["']([^"']+)["']""")
_GO_EXPORT_RE = re.compile(r"^func\s+(?:\([^)]*\)\s*)?([A-Z]\w*)", re.MULTILINE)
_JS_EXPORT_RE = re.compile(
    r"^export\s+(?:default\s+)?(?:function|class|const)\s+(\w+)", re.MULTILINE
)


@dataclass(slots=True)
class DirectoryContext:
    path: str
    purpose: str = ""
    responsibilities: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    key_files: list[str] = field(default_factory=list)
    updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "purpose": self.purpose,
            "responsibilities": list(self.responsibilities),
            "dependencies": list(self.dependencies),
            "key_files": list(self.key_files),
            "updated": self.updated,
        }

    def to_markdown(self) -> str:
        def _items(values: list[str]) -> str:
            return "\n".join(f"- {value}" for value in values) if values else "- (none)"

        return (
            f"# Context for {self.path}\n\n"
            f"## Purpose\n{self.purpose}\n\n"
            f"## Responsibilities\n{_items(self.responsibilities)}\n\n"
            f"## Dependencies\n{_items(self.dependencies)}\n\n"
            f"## Key Files\n{_items(self.key_files)}\n"
        )


def _unique(values: list[str], limit: int) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return seen[:limit]


def _scan_source(path: Path) -> tuple[list[str], list[str]]:
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return [], []
    if path.suffix == ".py":
        imports = [left or right for left, right in _PY_IMPORT_RE.findall(content)]
        symbols = [name for name in _PY_SYMBOL_RE.findall(content) if not name.startswith("_")]
        return imports, symbols
    imports = _QUOTED_IMPORT_RE.findall(content)
    pattern = _GO_EXPORT_RE if path.suffix == ".go" else _JS_EXPORT_RE
    return imports, pattern.findall(content)


class DirectoryContextGenerator:
    """Summarises a source directory into ``context.md`` for the agent."""

    def __init__(self, *, base_dir: Path | None = None, write: bool = True) -> None:
        self.base_dir = base_dir
        self.write = write

    def _anchor(self, path: str | Path) -> Path:
        candidate = Path(path)
        if candidate.is_absolute() or self.base_dir is None:
            return candidate
        return self.base_dir / candidate

    def generate(self, path: str | Path) -> DirectoryContext:
        directory = self._anchor(path)
        if not directory.is_dir():
            raise NotFoundError(f"context directory {directory} not found")
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            raise StoreIOError(f"failed to list {directory}: {exc}", path=directory) from exc

        files: list[str] = []
        imports: list[str] = []
        symbols: list[str] = []
        for entry in entries:
            if not entry.is_file() or entry.suffix not in SOURCE_SUFFIXES:
                continue
            files.append(entry.name)
            found_imports, found_symbols = _scan_source(entry)
            imports.extend(found_imports)
            symbols.extend(found_symbols)

        exported = _unique(symbols, 5)
        context = DirectoryContext(
            path=str(path),
            purpose=(
                f"Contains {len(files)} source files. "
                f"Implements functionality related to {directory.name}."
            ),
            responsibilities=[f"Exported symbols: {', '.join(exported)}"] if exported else [],
            dependencies=_unique(imports, 10),
            key_files=files,
            updated=datetime.now(UTC).replace(microsecond=0).isoformat(),
        )
        if self.write:
            atomic_write_text(directory / CONTEXT_FILE, context.to_markdown())
            logger.info("Generated context for %s", directory)
        return context
