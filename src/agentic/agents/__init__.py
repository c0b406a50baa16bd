from __future__ import annotations

from agentic.agents.base import AgentExecutor, ExecutionResult, UnsupportedExecutor
from agentic.agents.mock import MockExecutor
from agentic.agents.openai_executor import OpenAIExecutor
from agentic.errors import ValidationError

PLACEHOLDER_AGENTS = {"gemini", "copilot", "github-copilot", "cursor", "opencode", "antigravity"}


def build_executor(
    name: str,
    *,
    model: str = "gpt-5-codex",
    stop_signal: str = "<promise>COMPLETE</promise>",
) -> AgentExecutor:
    normalized = name.strip().lower()
    if normalized == "mock":
        return MockExecutor()
    if normalized in {"openai", "codex"}:
        return OpenAIExecutor(model=model, stop_signal=stop_signal)
    if normalized in PLACEHOLDER_AGENTS:
        return UnsupportedExecutor(normalized)
    known = ", ".join(sorted({"mock", "openai", "codex", *PLACEHOLDER_AGENTS}))
    raise ValidationError(f"unknown agent {name!r} (known agents: {known})")


__all__ = [
    "AgentExecutor",
    "ExecutionResult",
    "MockExecutor",
    "OpenAIExecutor",
    "PLACEHOLDER_AGENTS",
    "UnsupportedExecutor",
    "build_executor",
]
