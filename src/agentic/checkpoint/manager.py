from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from agentic.errors import StoreIOError, StructuralParseError
from agentic.fileio import dump_json, load_json_mapping

if TYPE_CHECKING:
    from agentic.agents.base import ExecutionResult
    from agentic.tasks.models import Task

logger = logging.getLogger(__name__)

DEFAULT_ITERATION_INTERVAL = 5
DEFAULT_TOKEN_THRESHOLDS = (0.5, 0.75, 0.9)
THRESHOLD_WINDOW = 0.05


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


@dataclass(slots=True)
class Checkpoint:
    task_id: str
    iteration: int
    tokens_used: int = 0
    created_at: str = field(default_factory=_utcnow_iso)
    agent: str = ""
    output: str = ""
    criteria_met: list[str] = field(default_factory=list)
    criteria_left: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    learnings: list[str] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "iteration": self.iteration,
            "tokens_used": self.tokens_used,
            "created_at": self.created_at,
            "agent": self.agent,
            "output": self.output,
            "criteria_met": list(self.criteria_met),
            "criteria_left": list(self.criteria_left),
            "files_modified": list(self.files_modified),
            "learnings": list(self.learnings),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Checkpoint:
        return cls(
            task_id=str(data.get("task_id", "")),
            iteration=int(data.get("iteration", 0)),
            tokens_used=int(data.get("tokens_used", 0)),
            created_at=str(data.get("created_at") or ""),
            agent=str(data.get("agent") or ""),
            output=str(data.get("output") or ""),
            criteria_met=[str(item) for item in data.get("criteria_met") or []],
            criteria_left=[str(item) for item in data.get("criteria_left") or []],
            files_modified=[str(item) for item in data.get("files_modified") or []],
            learnings=[str(item) for item in data.get("learnings") or []],
            notes=str(data.get("notes") or ""),
        )


def should_checkpoint(
    tokens_used: int,
    token_limit: int,
    iteration: int,
    iteration_interval: int = DEFAULT_ITERATION_INTERVAL,
    thresholds: list[float] | tuple[float, ...] = DEFAULT_TOKEN_THRESHOLDS,
) -> bool:
    """Decide whether the current iteration deserves a checkpoint.

    Fires on every nonzero multiple of ``iteration_interval`` and whenever the
    token ratio lies in ``[threshold, threshold + 0.05)`` for any threshold.
    The window is not cumulative: a caller polling coarsely can step over it.
    """
    if iteration_interval > 0 and iteration > 0 and iteration % iteration_interval == 0:
        return True
    if not thresholds or token_limit <= 0:
        return False
    ratio = tokens_used / token_limit
    # Rounded so the upper bound stays exclusive despite float error (0.9 + 0.05).
    return any(
        threshold <= ratio and round(ratio - threshold, 9) < THRESHOLD_WINDOW
        for threshold in thresholds
    )


def get_progress(checkpoint: Checkpoint, total_criteria: int) -> float:
    if total_criteria == 0:
        return 0.0
    return len(checkpoint.criteria_met) / total_criteria * 100


def create_checkpoint_from_result(
    task_id: str,
    iteration: int,
    agent: str,
    result: ExecutionResult,
    task: Task,
) -> Checkpoint:
    return Checkpoint(
        task_id=task_id,
        iteration=iteration,
        tokens_used=result.tokens_used,
        agent=agent,
        output=result.output,
        criteria_met=list(result.criteria_met),
        criteria_left=list(result.criteria_failed),
        files_modified=list(result.files_modified),
        notes=(
            f"Iteration {iteration}: {len(result.criteria_met)}/{len(task.acceptance)} "
            "criteria met"
        ),
    )


class CheckpointManager:
    def __init__(self, checkpoint_dir: Path) -> None:
        self.checkpoint_dir = Path(checkpoint_dir)

    def _iteration_path(self, task_id: str, iteration: int) -> Path:
        return self.checkpoint_dir / f"{task_id}-{iteration:03d}.json"

    def _latest_path(self, task_id: str) -> Path:
        return self.checkpoint_dir / f"{task_id}-latest.json"

    def _task_documents(self, task_id: str) -> list[Path]:
        if not self.checkpoint_dir.is_dir():
            return []
        # Ids may share a prefix (TASK-1 and TASK-1-2), so match the suffix exactly.
        own_name = re.compile(rf"{re.escape(task_id)}-(?:\d+|latest)\.json")
        return sorted(
            path
            for path in self.checkpoint_dir.glob(f"{task_id}-*.json")
            if own_name.fullmatch(path.name)
        )

    def save(self, checkpoint: Checkpoint) -> None:
        payload = checkpoint.to_dict()
        dump_json(self._iteration_path(checkpoint.task_id, checkpoint.iteration), payload)
        dump_json(self._latest_path(checkpoint.task_id), payload)
        logger.debug(
            "Saved checkpoint %s iteration %d", checkpoint.task_id, checkpoint.iteration
        )

    def _load_path(self, path: Path) -> Checkpoint | None:
        payload = load_json_mapping(path)
        if payload is None:
            return None
        try:
            return Checkpoint.from_dict(payload)
        except (TypeError, ValueError) as exc:
            raise StructuralParseError(f"invalid checkpoint in {path}: {exc}", path=path) from exc

    def load(self, task_id: str) -> Checkpoint | None:
        return self._load_path(self._latest_path(task_id))

    def load_iteration(self, task_id: str, iteration: int) -> Checkpoint | None:
        return self._load_path(self._iteration_path(task_id, iteration))

    def list(self, task_id: str) -> list[Checkpoint]:
        latest = self._latest_path(task_id)
        checkpoints: list[Checkpoint] = []
        for path in self._task_documents(task_id):
            if path == latest:
                continue
            try:
                checkpoint = self._load_path(path)
            except StructuralParseError as exc:
                logger.warning("Skipping unreadable checkpoint %s: %s", path, exc)
                continue
            if checkpoint is None or checkpoint.task_id != task_id:
                continue
            checkpoints.append(checkpoint)
        checkpoints.sort(key=lambda item: item.iteration)
        return checkpoints

    @staticmethod
    def _remove(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StoreIOError(f"failed to delete checkpoint {path}: {exc}", path=path) from exc

    def delete(self, task_id: str, iteration: int) -> None:
        self._remove(self._iteration_path(task_id, iteration))

    def delete_all(self, task_id: str) -> None:
        for path in self._task_documents(task_id):
            self._remove(path)
