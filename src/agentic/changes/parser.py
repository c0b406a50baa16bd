"""Lenient parsing of human-authored change documents.

Both documents go through one line tokenizer. Task lists keep numbered and
checkbox items; task-detail documents feed a section accumulator keyed by
``##`` headings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from agentic.errors import EmptyTaskListError, StructuralParseError
from agentic.fileio import read_text

NUMBERED_RE = re.compile(r"^\d+\.\s+(?P<text>.+)$")
CHECKBOX_RE = re.compile(r"^[-*]\s+\[(?P<mark>[ xX~])\]\s+(?P<text>.+)$")
BULLET_RE = re.compile(r"^[-*]\s+(?P<text>.+)$")
EMPTY_CHECKBOX_RE = re.compile(r"^[-*]\s+\[[ xX~]\]\s*$")
HEADING_RE = re.compile(r"^(?P<hashes>#{1,6})\s+(?P<text>.+?)\s*#*$")

VER_LINK_RE = re.compile(r"\s*\(ver\s+\[(?P<label>[^\]]*)\]\((?P<path>[^)]*)\)\)\s*$")
BARE_LINK_RE = re.compile(r"\s*\[(?P<label>[^\]]*)\]\((?P<path>[^)]*)\)\s*$")
INLINE_COMMENT_RE = re.compile(r"<!--.*?-->")


class LineKind(StrEnum):
    BLANK = "blank"
    COMMENT = "comment"
    HEADING = "heading"
    NUMBERED = "numbered"
    CHECKBOX = "checkbox"
    BULLET = "bullet"
    TEXT = "text"


@dataclass(slots=True)
class Line:
    kind: LineKind
    text: str
    raw: str
    number: int
    level: int = 0


def tokenize(content: str) -> list[Line]:
    lines: list[Line] = []
    in_comment = False
    for number, raw in enumerate(content.splitlines(), start=1):
        stripped = raw.strip()
        if in_comment:
            lines.append(Line(LineKind.COMMENT, stripped, raw, number))
            if "-->" in stripped:
                in_comment = False
            continue
        if stripped.startswith("<!--") and "-->" not in stripped:
            in_comment = True
            lines.append(Line(LineKind.COMMENT, stripped, raw, number))
            continue
        without_comments = INLINE_COMMENT_RE.sub("", stripped).strip()
        if stripped and not without_comments:
            lines.append(Line(LineKind.COMMENT, stripped, raw, number))
            continue
        stripped = without_comments
        if not stripped or EMPTY_CHECKBOX_RE.match(stripped):
            lines.append(Line(LineKind.BLANK, "", raw, number))
            continue
        if match := HEADING_RE.match(stripped):
            lines.append(
                Line(
                    LineKind.HEADING,
                    match.group("text").strip(),
                    raw,
                    number,
                    level=len(match.group("hashes")),
                )
            )
            continue
        if match := NUMBERED_RE.match(stripped):
            lines.append(Line(LineKind.NUMBERED, match.group("text").strip(), raw, number))
            continue
        if match := CHECKBOX_RE.match(stripped):
            lines.append(Line(LineKind.CHECKBOX, match.group("text").strip(), raw, number))
            continue
        if match := BULLET_RE.match(stripped):
            lines.append(Line(LineKind.BULLET, match.group("text").strip(), raw, number))
            continue
        lines.append(Line(LineKind.TEXT, stripped, raw, number))
    return lines


@dataclass(slots=True)
class TaskEntry:
    title: str
    file_ref: str = ""


def _normalize_ref(path: str) -> str:
    ref = path.strip()
    if ref.startswith("./"):
        ref = ref[2:]
    return ref.lstrip("/")


def split_task_reference(raw: str) -> TaskEntry:
    """Separate a list item's title from a trailing link to its detail document.

    ``Title (ver [label](tasks/01-x.md))`` always yields a reference; a bare
    trailing ``[label](path)`` only does when the path lives under ``tasks/``.
    """
    if match := VER_LINK_RE.search(raw):
        title = raw[: match.start()].strip()
        return TaskEntry(title=title, file_ref=_normalize_ref(match.group("path")))
    if match := BARE_LINK_RE.search(raw):
        title = raw[: match.start()].strip()
        ref = _normalize_ref(match.group("path"))
        if ref.startswith("tasks/") and title:
            return TaskEntry(title=title, file_ref=ref)
        if title:
            return TaskEntry(title=title)
    return TaskEntry(title=raw.strip())


def parse_task_list(content: str, *, source: Path | None = None) -> list[TaskEntry]:
    entries = [
        split_task_reference(line.text)
        for line in tokenize(content)
        if line.kind in (LineKind.NUMBERED, LineKind.CHECKBOX)
    ]
    entries = [entry for entry in entries if entry.title]
    if not entries:
        where = str(source) if source is not None else "task list"
        raise EmptyTaskListError(f"no tasks found in {where}", path=source)
    return entries


def parse_tasks_file(path: Path) -> list[TaskEntry]:
    content = read_text(path)
    if content is None:
        raise StructuralParseError(f"tasks file not found: {path}", path=path)
    return parse_task_list(content, source=path)


SECTION_DESCRIPTION = "description"
SECTION_PREREQUISITES = "prerequisites"
SECTION_ACCEPTANCE = "acceptance"
SECTION_NOTES = "notes"


def normalize_section(heading: str) -> str | None:
    lower = heading.strip().lower()
    if "description" in lower:
        return SECTION_DESCRIPTION
    if "prerequisite" in lower or "pre-requisite" in lower:
        return SECTION_PREREQUISITES
    if "acceptance" in lower:
        return SECTION_ACCEPTANCE
    if "technical" in lower or lower == "notes":
        return SECTION_NOTES
    return None


@dataclass(slots=True)
class TaskDetail:
    title: str = ""
    description: str = ""
    prerequisites: list[str] = field(default_factory=list)
    acceptance: list[str] = field(default_factory=list)
    notes: str = ""
    ignored_sections: list[str] = field(default_factory=list)


def _list_items(lines: list[Line]) -> list[str]:
    return [line.text for line in lines if line.kind in (LineKind.CHECKBOX, LineKind.BULLET)]


def _block_text(lines: list[Line]) -> str:
    kept = [
        INLINE_COMMENT_RE.sub("", line.raw).rstrip()
        for line in lines
        if line.kind != LineKind.COMMENT
    ]
    return "\n".join(kept).strip()


def parse_task_detail(content: str) -> TaskDetail:
    detail = TaskDetail()
    section: str | None = None
    buffer: list[Line] = []
    in_section = False

    def _flush() -> None:
        if section is None or not buffer:
            return
        if section == SECTION_DESCRIPTION:
            detail.description = _block_text(buffer)
        elif section == SECTION_PREREQUISITES:
            detail.prerequisites = _list_items(buffer)
        elif section == SECTION_ACCEPTANCE:
            detail.acceptance = _list_items(buffer)
        elif section == SECTION_NOTES:
            detail.notes = _block_text(buffer)

    for line in tokenize(content):
        if line.kind == LineKind.HEADING and line.level == 1:
            if not detail.title:
                detail.title = line.text
            continue
        if line.kind == LineKind.HEADING and line.level == 2:
            _flush()
            buffer = []
            in_section = True
            section = normalize_section(line.text)
            if section is None:
                detail.ignored_sections.append(line.text)
            continue
        if in_section:
            buffer.append(line)
    _flush()
    return detail


def parse_task_detail_file(path: Path) -> TaskDetail:
    content = read_text(path)
    if content is None:
        raise StructuralParseError(f"task detail file not found: {path}", path=path)
    return parse_task_detail(content)
