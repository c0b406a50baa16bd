from __future__ import annotations

from agentic.agents.base import AgentExecutor, ExecutionResult
from agentic.tasks.models import Task


class MockExecutor(AgentExecutor):
    name = "mock"

    def __init__(self, tokens_per_call: int = 1000, *, succeed: bool = True) -> None:
        self.tokens_per_call = tokens_per_call
        self.succeed = succeed
        self.prompts: list[str] = []

    def execute(self, prompt: str, task: Task) -> ExecutionResult:
        self.prompts.append(prompt)
        if self.succeed:
            return ExecutionResult(
                output="Mock output",
                success=True,
                criteria_met=list(task.acceptance),
                tokens_used=self.tokens_per_call,
            )
        return ExecutionResult(
            output="Mock output",
            success=False,
            criteria_failed=list(task.acceptance),
            tokens_used=self.tokens_per_call,
        )
