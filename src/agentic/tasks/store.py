from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from agentic.errors import NotFoundError, StructuralParseError, ValidationError
from agentic.fileio import dump_yaml, load_yaml_mapping
from agentic.specs.resolver import SpecResolver
from agentic.tasks.models import (
    BACKLOG,
    COLLECTION_STATUS,
    COLLECTIONS,
    DONE,
    IN_PROGRESS,
    Task,
    TaskStatus,
)
from agentic.tasks.readiness import can_claim_task, format_readiness_result

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuditReport:
    duplicates: dict[str, list[str]] = field(default_factory=dict)
    status_mismatches: list[tuple[str, str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.duplicates and not self.status_mismatches


class TaskStore:
    """Three whole-file task collections: backlog, in-progress and done."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    @staticmethod
    def _validate_collection(name: str) -> None:
        if name not in COLLECTIONS:
            raise ValidationError(
                f"unknown task collection {name!r} (expected one of {', '.join(COLLECTIONS)})"
            )

    def collection_path(self, name: str) -> Path:
        self._validate_collection(name)
        return self.base_dir / f"{name}.yaml"

    def load_collection(self, name: str) -> list[Task]:
        path = self.collection_path(name)
        payload = load_yaml_mapping(path)
        if payload is None:
            return []
        raw_tasks = payload.get("tasks") or []
        if not isinstance(raw_tasks, list):
            raise StructuralParseError(f"'tasks' in {path} must be a list", path=path)
        tasks: list[Task] = []
        for index, item in enumerate(raw_tasks):
            if not isinstance(item, dict):
                raise StructuralParseError(
                    f"task #{index + 1} in {path} is not a mapping", path=path
                )
            try:
                tasks.append(Task.from_dict(item))
            except (TypeError, ValueError) as exc:
                raise StructuralParseError(
                    f"task #{index + 1} in {path} is invalid: {exc}", path=path
                ) from exc
        return tasks

    def save_collection(self, name: str, tasks: list[Task]) -> None:
        dump_yaml(self.collection_path(name), {"tasks": [task.to_dict() for task in tasks]})

    def _known_ids(self) -> set[str]:
        known: set[str] = set()
        for name in COLLECTIONS:
            for task in self.load_collection(name):
                known.add(task.id)
                known.update(subtask.id for subtask in task.subtasks)
        return known

    def _next_id(self) -> str:
        base = f"TASK-{int(time.time())}"
        known = self._known_ids()
        if base not in known:
            return base
        suffix = 2
        while f"{base}-{suffix}" in known:
            suffix += 1
        return f"{base}-{suffix}"

    def create_task(self, title: str) -> Task:
        backlog = self.load_collection(BACKLOG)
        task = Task(id=self._next_id(), title=title, status=TaskStatus.PENDING)
        backlog.append(task)
        self.save_collection(BACKLOG, backlog)
        logger.debug("Created task %s: %s", task.id, title)
        return copy.deepcopy(task)

    def update_task(self, task: Task, collection: str = BACKLOG) -> None:
        tasks = self.load_collection(collection)
        for index, existing in enumerate(tasks):
            if existing.id == task.id:
                tasks[index] = task
                self.save_collection(collection, tasks)
                return
        raise NotFoundError(f"task {task.id} not found in {collection}")

    def move(self, task_id: str, from_collection: str, to_collection: str, new_status: str) -> Task:
        self._validate_collection(to_collection)
        try:
            status = TaskStatus(new_status)
        except ValueError as exc:
            raise ValidationError(f"unknown task status {new_status!r}") from exc
        source = self.load_collection(from_collection)
        moving: Task | None = None
        remaining: list[Task] = []
        for task in source:
            if moving is None and task.id == task_id:
                moving = task
            else:
                remaining.append(task)
        if moving is None:
            raise NotFoundError(f"task {task_id} not found in {from_collection}")

        # Two independent document writes: a crash in between loses the task.
        self.save_collection(from_collection, remaining)
        target = self.load_collection(to_collection)
        moving.status = status
        target.append(moving)
        self.save_collection(to_collection, target)
        return moving

    def claim(self, task_id: str, owner: str) -> Task:
        backlog = self.load_collection(BACKLOG)
        claimed: Task | None = None
        remaining: list[Task] = []
        for task in backlog:
            if claimed is None and task.id == task_id:
                claimed = task
            else:
                remaining.append(task)
        if claimed is None:
            raise NotFoundError(
                f"task {task_id} not found in backlog (can only claim pending tasks)"
            )

        self.save_collection(BACKLOG, remaining)
        in_progress = self.load_collection(IN_PROGRESS)
        claimed.status = TaskStatus.IN_PROGRESS
        claimed.assigned_to = owner
        in_progress.append(claimed)
        self.save_collection(IN_PROGRESS, in_progress)
        logger.info("Claimed task %s for %s", task_id, owner)
        return claimed

    def claim_with_readiness(
        self, task_id: str, owner: str, resolver: SpecResolver | None = None
    ) -> Task:
        """Claim after logging readiness checks; failing checks do not block."""
        for task in self.load_collection(BACKLOG):
            if task.id == task_id:
                result = can_claim_task(task, resolver)
                if result.checks:
                    logger.info("%s", format_readiness_result(result).rstrip())
                break
        return self.claim(task_id, owner)

    def complete_task(self, task_id: str) -> Task:
        task, source = self.find_task(task_id)
        if task is None or source is None:
            raise NotFoundError(f"task {task_id} not found")
        if source == DONE:
            return task
        completed = self.move(task_id, source, DONE, TaskStatus.DONE)
        logger.info("Completed task %s", task_id)
        return completed

    def find_task(self, task_id: str) -> tuple[Task | None, str | None]:
        for name in COLLECTIONS:
            for task in self.load_collection(name):
                if task.id == task_id:
                    return task, name
                for subtask in task.subtasks:
                    if subtask.id == task_id:
                        return (
                            Task(
                                id=subtask.id,
                                title=subtask.title,
                                status=subtask.status,
                                assigned_to=subtask.assigned_to,
                            ),
                            name,
                        )
        return None, None

    def audit(self) -> AuditReport:
        """Report tasks held by several collections or with a mismatched status."""
        report = AuditReport()
        seen: dict[str, list[str]] = {}
        for name in COLLECTIONS:
            for task in self.load_collection(name):
                seen.setdefault(task.id, []).append(name)
                expected = COLLECTION_STATUS[name]
                if task.status != expected:
                    report.status_mismatches.append((task.id, name, str(task.status)))
        report.duplicates = {task_id: names for task_id, names in seen.items() if len(names) > 1}
        return report
