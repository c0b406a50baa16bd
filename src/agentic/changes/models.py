from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ChangeStatus(StrEnum):
    DRAFT = "draft"
    IMPORTED = "imported"
    IMPLEMENTING = "implementing"
    IMPLEMENTED = "implemented"
    ARCHIVED = "archived"

    @property
    def rank(self) -> int:
        return list(ChangeStatus).index(self)


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


@dataclass(slots=True)
class Change:
    id: str
    name: str
    status: ChangeStatus = ChangeStatus.DRAFT
    source_file: str = ""
    created_at: str = field(default_factory=_utcnow_iso)
    task_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "status": str(self.status),
            "source_file": self.source_file,
        }
        if self.task_ids:
            payload["task_ids"] = list(self.task_ids)
        payload["created_at"] = self.created_at
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Change:
        created_at = data.get("created_at")
        if isinstance(created_at, datetime):
            created_at = created_at.isoformat()
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or ""),
            status=ChangeStatus(data.get("status") or ChangeStatus.DRAFT),
            source_file=str(data.get("source_file") or ""),
            created_at=str(created_at or ""),
            task_ids=[str(item) for item in data.get("task_ids") or []],
        )


@dataclass(slots=True)
class ChangeProgress:
    """Counts of a change's linked tasks by the collection holding them."""

    total: int = 0
    done: int = 0
    in_progress: int = 0
    pending: int = 0
    task_ids: list[str] = field(default_factory=list)

    def derived_status(self, stored: ChangeStatus) -> ChangeStatus:
        if stored == ChangeStatus.IMPORTED and (self.done or self.in_progress):
            return ChangeStatus.IMPLEMENTING
        return stored


@dataclass(slots=True)
class SyncResult:
    changes_imported: list[str] = field(default_factory=list)
    changes_skipped: list[str] = field(default_factory=list)
    tasks_created: int = 0
    errors: list[str] = field(default_factory=list)
