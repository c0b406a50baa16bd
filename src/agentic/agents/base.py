from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from agentic.errors import ExecutorNotImplementedError
from agentic.tasks.models import Task


@dataclass(slots=True)
class ExecutionResult:
    output: str
    success: bool
    criteria_met: list[str] = field(default_factory=list)
    criteria_failed: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    error_message: str = ""
    tokens_used: int = 0

    def all_criteria_met(self) -> bool:
        return self.success and not self.criteria_failed


class AgentExecutor(ABC):
    name: str = "agent"

    @abstractmethod
    def execute(self, prompt: str, task: Task) -> ExecutionResult:
        """Run one agent pass for ``task`` and report what it achieved."""


class UnsupportedExecutor(AgentExecutor):
    """Placeholder for agents that have no backend wired up yet."""

    def __init__(self, name: str) -> None:
        self.name = name

    def execute(self, prompt: str, task: Task) -> ExecutionResult:
        raise ExecutorNotImplementedError(
            f"agent executor {self.name!r} is not implemented", executor=self.name
        )
