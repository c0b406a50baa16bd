from __future__ import annotations

import json
from typing import Any

from agentic.agents.base import AgentExecutor, ExecutionResult
from agentic.errors import ExecutorError
from agentic.tasks.models import Task

SYSTEM_PROMPT = """
You are a coding agent working through one task of a backlog.
Work only inside the task scope. When every acceptance criterion is met,
finish your answer with the stop signal, and list each met criterion on a
line starting with "MET:" and each unmet one with "UNMET:".
""".strip()


class OpenAIExecutor(AgentExecutor):
    """Executes a task through the OpenAI Responses API."""

    name = "openai"

    def __init__(
        self,
        *,
        model: str = "gpt-5-codex",
        stop_signal: str = "<promise>COMPLETE</promise>",
        client: Any | None = None,
    ) -> None:
        self.model = model
        self.stop_signal = stop_signal
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI()
        return self._client

    @staticmethod
    def build_user_input(prompt: str, task: Task) -> str:
        parts = [prompt]
        task_payload = {
            "id": task.id,
            "title": task.title,
            "scope": task.scope,
            "inputs": task.inputs,
            "outputs": task.outputs,
            "acceptance": task.acceptance,
        }
        parts.append("Task JSON:")
        parts.append(json.dumps(task_payload, ensure_ascii=False, indent=2))
        return "\n\n".join(parts)

    @staticmethod
    def _extract_text(payload: Any) -> str:
        if payload is None:
            return ""
        output_text = getattr(payload, "output_text", None)
        if isinstance(output_text, str):
            return output_text
        if isinstance(payload, dict):
            value = payload.get("output_text")
            if isinstance(value, str):
                return value
        return str(output_text or "")

    @staticmethod
    def _extract_tokens(payload: Any) -> int:
        usage = getattr(payload, "usage", None)
        if usage is None and isinstance(payload, dict):
            usage = payload.get("usage")
        if usage is None:
            return 0
        total = getattr(usage, "total_tokens", None)
        if total is None and isinstance(usage, dict):
            total = usage.get("total_tokens")
        try:
            return int(total or 0)
        except (TypeError, ValueError):
            return 0

    @staticmethod
    def _criteria(output: str, task: Task) -> tuple[list[str], list[str]]:
        met: list[str] = []
        failed: list[str] = []
        for raw_line in output.splitlines():
            line = raw_line.strip()
            if line.upper().startswith("MET:"):
                met.append(line[4:].strip())
            elif line.upper().startswith("UNMET:"):
                failed.append(line[6:].strip())
        if not met and not failed:
            return [], list(task.acceptance)
        return met, failed

    def execute(self, prompt: str, task: Task) -> ExecutionResult:
        try:
            payload = self._get_client().responses.create(
                model=self.model,
                input=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_user_input(prompt, task)},
                ],
            )
        except Exception as exc:
            raise ExecutorError(f"OpenAI execution failed: {exc}", executor=self.name) from exc

        output = self._extract_text(payload).strip()
        met, failed = self._criteria(output, task)
        success = self.stop_signal in output and not failed
        return ExecutionResult(
            output=output,
            success=success,
            criteria_met=met,
            criteria_failed=failed,
            tokens_used=self._extract_tokens(payload),
        )
