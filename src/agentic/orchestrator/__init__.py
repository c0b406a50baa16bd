from __future__ import annotations

from agentic.orchestrator.autopilot import (
    AutopilotLoop,
    AutopilotOutcome,
    AutopilotResult,
    ExecutionReport,
    build_prompt,
)
from agentic.orchestrator.state import TRANSITIONS, Event, State, StateMachine

__all__ = [
    "AutopilotLoop",
    "AutopilotOutcome",
    "AutopilotResult",
    "Event",
    "ExecutionReport",
    "State",
    "StateMachine",
    "TRANSITIONS",
    "build_prompt",
]
