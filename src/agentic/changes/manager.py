from __future__ import annotations

import logging
import re
import shutil
from datetime import UTC, datetime
from pathlib import Path

from agentic.changes.models import Change, ChangeProgress, ChangeStatus, SyncResult
from agentic.changes.parser import (
    TaskEntry,
    TaskDetail,
    parse_task_detail_file,
    parse_tasks_file,
)
from agentic.changes.templates import render_proposal, render_task_detail, render_task_list
from agentic.errors import (
    AgenticError,
    AlreadyExistsError,
    EmptyTaskListError,
    NotFoundError,
    StoreIOError,
    StructuralParseError,
    ValidationError,
)
from agentic.fileio import atomic_write_text, dump_yaml, load_yaml_mapping, read_text
from agentic.tasks.models import BACKLOG, DONE, IN_PROGRESS, Task
from agentic.tasks.store import TaskStore

logger = logging.getLogger(__name__)

REGISTRY_FILE = "changes.yaml"
METADATA_FILE = "metadata.yaml"
PROPOSAL_FILE = "proposal.md"
TASKS_FILE = "tasks.md"
IMPLEMENTED_MARKER = "IMPLEMENTED"
ARCHIVE_DIR = "_archive"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def to_kebab_case(name: str) -> str:
    return _NON_ALNUM.sub("-", name.strip().lower()).strip("-")


def _merge_detail(task: Task, detail: TaskDetail) -> None:
    parts: list[str] = []
    if detail.description:
        parts.append(detail.description)
    if detail.prerequisites:
        parts.append("Prerequisites:\n" + "\n".join(f"- {item}" for item in detail.prerequisites))
    if detail.notes:
        parts.append("Technical Notes:\n" + detail.notes)
    if parts:
        task.description = "\n\n".join(parts)
    if detail.acceptance:
        task.acceptance = list(detail.acceptance)


class ChangeManager:
    """Lifecycle of externally-authored change proposals.

    Statuses only move forward: draft -> imported -> implemented -> archived.
    ``implementing`` is never stored; it is derived from task progress.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    @property
    def registry_path(self) -> Path:
        return self.base_dir / REGISTRY_FILE

    @property
    def archive_dir(self) -> Path:
        return self.base_dir / ARCHIVE_DIR

    def change_dir(self, change_id: str) -> Path:
        return self.base_dir / change_id

    def _load_registry(self) -> list[Change]:
        payload = load_yaml_mapping(self.registry_path)
        if payload is None:
            return []
        raw_changes = payload.get("changes") or []
        if not isinstance(raw_changes, list):
            raise StructuralParseError(
                f"'changes' in {self.registry_path} must be a list", path=self.registry_path
            )
        changes: list[Change] = []
        for item in raw_changes:
            if not isinstance(item, dict):
                raise StructuralParseError(
                    f"malformed change entry in {self.registry_path}", path=self.registry_path
                )
            try:
                changes.append(Change.from_dict(item))
            except ValueError as exc:
                raise StructuralParseError(
                    f"invalid change entry in {self.registry_path}: {exc}",
                    path=self.registry_path,
                ) from exc
        return changes

    def _save_registry(self, changes: list[Change]) -> None:
        dump_yaml(self.registry_path, {"changes": [change.to_dict() for change in changes]})

    def _write_metadata(self, change: Change, change_dir: Path | None = None) -> None:
        target = change_dir or self.change_dir(change.id)
        dump_yaml(target / METADATA_FILE, change.to_dict())

    def _store(self, change: Change, *, change_dir: Path | None = None) -> None:
        changes = self._load_registry()
        for index, existing in enumerate(changes):
            if existing.id == change.id:
                changes[index] = change
                break
        else:
            raise NotFoundError(f"change {change.id!r} not found in registry")
        self._save_registry(changes)
        self._write_metadata(change, change_dir)

    @staticmethod
    def _advance(change: Change, target: ChangeStatus) -> None:
        if target.rank <= change.status.rank:
            raise ValidationError(
                f"change {change.id!r} cannot move from {change.status} to {target}"
            )
        change.status = target

    def list(self) -> list[Change]:
        return self._load_registry()

    def get(self, change_id: str) -> Change:
        for change in self._load_registry():
            if change.id == change_id:
                return change
        raise NotFoundError(f"change {change_id!r} not found")

    def init(self, name: str, source_file: str | Path | None = None) -> Change:
        change_id = to_kebab_case(name)
        if not change_id:
            raise ValidationError(f"cannot derive a change id from {name!r}")
        change_dir = self.change_dir(change_id)
        if change_dir.exists() or any(item.id == change_id for item in self._load_registry()):
            raise AlreadyExistsError(f"change {change_id!r} already exists")

        requirements = ""
        source = str(source_file) if source_file else ""
        if source:
            content = read_text(Path(source))
            if content is None:
                raise NotFoundError(f"source file {source} not found")
            requirements = content

        try:
            (change_dir / "specs").mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreIOError(
                f"failed to create change directory {change_dir}: {exc}", path=change_dir
            ) from exc

        change = Change(id=change_id, name=name, source_file=source)
        atomic_write_text(change_dir / PROPOSAL_FILE, render_proposal(name, source, requirements))
        atomic_write_text(change_dir / TASKS_FILE, render_task_list(name))
        self._write_metadata(change, change_dir)

        changes = self._load_registry()
        changes.append(change)
        self._save_registry(changes)
        logger.info("Initialized change %s", change_id)
        return change

    def parse_entries(self, change_id: str) -> list[TaskEntry]:
        return parse_tasks_file(self.change_dir(change_id) / TASKS_FILE)

    def import_change(self, change_id: str, task_store: TaskStore) -> list[Task]:
        change = self.get(change_id)
        if change.status != ChangeStatus.DRAFT:
            raise AlreadyExistsError(
                f"change {change_id!r} already imported (status: {change.status})"
            )
        change_dir = self.change_dir(change_id)
        entries = self.parse_entries(change_id)

        created: list[Task] = []
        for entry in entries:
            task = task_store.create_task(f"[{change_id}] {entry.title}")
            task.change_id = change_id
            task.spec_refs = [f"{change_id}/{PROPOSAL_FILE}"]
            if entry.file_ref:
                detail_path = change_dir / entry.file_ref
                if detail_path.is_file():
                    _merge_detail(task, parse_task_detail_file(detail_path))
                else:
                    logger.warning(
                        "Task detail %s referenced by %r is missing; importing title only",
                        detail_path,
                        entry.title,
                    )
            task_store.update_task(task, BACKLOG)
            created.append(task)
            change.task_ids.append(task.id)

        self._advance(change, ChangeStatus.IMPORTED)
        self._store(change)
        logger.info("Imported %d task(s) from change %s", len(created), change_id)
        return created

    def sync(self, task_store: TaskStore) -> SyncResult:
        """Import every draft change whose task list has been filled in."""
        result = SyncResult()
        for change in self._load_registry():
            if change.status != ChangeStatus.DRAFT:
                continue
            if not (self.change_dir(change.id) / TASKS_FILE).is_file():
                result.errors.append(f"{change.id}: {TASKS_FILE} is missing")
                continue
            try:
                self.parse_entries(change.id)
            except EmptyTaskListError:
                result.changes_skipped.append(change.id)
                continue
            except AgenticError as exc:
                result.errors.append(f"{change.id}: {exc}")
                logger.warning("Cannot read task list of change %s: %s", change.id, exc)
                continue
            try:
                created = self.import_change(change.id, task_store)
            except AgenticError as exc:
                result.errors.append(f"{change.id}: {exc}")
                logger.warning("Import of change %s failed: %s", change.id, exc)
                continue
            result.changes_imported.append(change.id)
            result.tasks_created += len(created)
        return result

    def progress(self, change_id: str, task_store: TaskStore) -> ChangeProgress:
        change = self.get(change_id)
        progress = ChangeProgress(total=len(change.task_ids), task_ids=list(change.task_ids))
        linked = set(change.task_ids)
        for collection in (BACKLOG, IN_PROGRESS, DONE):
            for task in task_store.load_collection(collection):
                if task.id not in linked:
                    continue
                if collection == DONE:
                    progress.done += 1
                elif collection == IN_PROGRESS:
                    progress.in_progress += 1
                else:
                    progress.pending += 1
        return progress

    def effective_status(self, change_id: str, task_store: TaskStore) -> ChangeStatus:
        change = self.get(change_id)
        return self.progress(change_id, task_store).derived_status(change.status)

    def complete(self, change_id: str, task_store: TaskStore) -> Change:
        progress = self.progress(change_id, task_store)
        if progress.in_progress:
            raise ValidationError(
                f"change {change_id!r} has {progress.in_progress} task(s) still in progress"
            )
        if progress.pending:
            raise ValidationError(
                f"change {change_id!r} has {progress.pending} task(s) still pending"
            )
        if not progress.done:
            raise ValidationError(f"change {change_id!r} has no completed tasks")

        change = self.get(change_id)
        self._advance(change, ChangeStatus.IMPLEMENTED)
        marker = (
            f"Implementation completed: {datetime.now(UTC).replace(microsecond=0).isoformat()}\n"
            f"Tasks completed: {progress.done}\n"
        )
        atomic_write_text(self.change_dir(change_id) / IMPLEMENTED_MARKER, marker)
        self._store(change)
        logger.info("Change %s implemented", change_id)
        return change

    def archive(self, change_id: str) -> Path:
        change_dir = self.change_dir(change_id)
        if not (change_dir / IMPLEMENTED_MARKER).is_file():
            raise ValidationError(
                f"change {change_id!r} is not implemented (complete it before archiving)"
            )
        change = self.get(change_id)
        self._advance(change, ChangeStatus.ARCHIVED)

        destination = self.archive_dir / change_id
        if destination.exists():
            raise AlreadyExistsError(f"archive for change {change_id!r} already exists")
        try:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(change_dir), str(destination))
        except OSError as exc:
            raise StoreIOError(
                f"failed to archive change {change_id!r}: {exc}", path=change_dir
            ) from exc
        self._store(change, change_dir=destination)
        logger.info("Archived change %s to %s", change_id, destination)
        return destination

    def scaffold_task_files(self, change_id: str, titles: list[str]) -> list[Path]:
        self.get(change_id)
        tasks_dir = self.change_dir(change_id) / "tasks"
        created: list[Path] = []
        for number, title in enumerate(titles, start=1):
            slug = to_kebab_case(title) or "task"
            path = tasks_dir / f"{number:02d}-{slug}.md"
            if path.exists():
                logger.debug("Keeping existing task detail %s", path)
                continue
            atomic_write_text(path, render_task_detail(title))
            created.append(path)
        return created
