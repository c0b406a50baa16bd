from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"


BACKLOG = "backlog"
IN_PROGRESS = "in-progress"
DONE = "done"
COLLECTIONS = (BACKLOG, IN_PROGRESS, DONE)

COLLECTION_STATUS = {
    BACKLOG: TaskStatus.PENDING,
    IN_PROGRESS: TaskStatus.IN_PROGRESS,
    DONE: TaskStatus.DONE,
}


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


@dataclass(slots=True)
class SubTask:
    id: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "title": self.title, "status": str(self.status)}
        if self.assigned_to:
            payload["assigned_to"] = self.assigned_to
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubTask:
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title", "")),
            status=TaskStatus(data.get("status") or TaskStatus.PENDING),
            assigned_to=str(data.get("assigned_to") or ""),
        )


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: str = ""
    scope: list[str] = field(default_factory=list)
    spec_refs: list[str] = field(default_factory=list)
    skill_refs: list[str] = field(default_factory=list)
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    acceptance: list[str] = field(default_factory=list)
    change_id: str = ""
    track_id: str = ""
    subtasks: list[SubTask] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": str(self.status),
        }
        if self.assigned_to:
            payload["assigned_to"] = self.assigned_to
        for key in ("scope", "spec_refs", "skill_refs", "inputs", "outputs", "acceptance"):
            values = getattr(self, key)
            if values:
                payload[key] = list(values)
        if self.change_id:
            payload["change_id"] = self.change_id
        if self.track_id:
            payload["track_id"] = self.track_id
        if self.subtasks:
            payload["subtasks"] = [subtask.to_dict() for subtask in self.subtasks]
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        raw_subtasks = data.get("subtasks") or []
        return cls(
            id=str(data.get("id", "")),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            status=TaskStatus(data.get("status") or TaskStatus.PENDING),
            assigned_to=str(data.get("assigned_to") or ""),
            scope=_str_list(data.get("scope")),
            spec_refs=_str_list(data.get("spec_refs")),
            skill_refs=_str_list(data.get("skill_refs")),
            inputs=_str_list(data.get("inputs")),
            outputs=_str_list(data.get("outputs")),
            acceptance=_str_list(data.get("acceptance")),
            change_id=str(data.get("change_id") or ""),
            track_id=str(data.get("track_id") or ""),
            subtasks=[
                SubTask.from_dict(item) for item in raw_subtasks if isinstance(item, dict)
            ],
        )
