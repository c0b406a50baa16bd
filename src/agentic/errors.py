from __future__ import annotations

from pathlib import Path


class AgenticError(RuntimeError):
    """Base class for task-lifecycle errors."""


class NotFoundError(AgenticError):
    """Raised when an operation requires a task or change that does not exist."""


class AlreadyExistsError(AgenticError):
    """Raised for duplicate change slugs and re-imports of non-draft changes."""


class ValidationError(AgenticError):
    """Raised when business-rule preconditions are not met."""


class StructuralParseError(AgenticError):
    """Raised when a persisted or human-authored document cannot be parsed."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class EmptyTaskListError(StructuralParseError):
    """Raised when a task list has no list-shaped lines yet."""


class StoreIOError(AgenticError):
    """Raised for filesystem failures other than a missing document."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class InvalidTransitionError(AgenticError):
    def __init__(self, state: str, event: str, message: str | None = None) -> None:
        super().__init__(message or f"invalid transition from {state} with event {event}")
        self.state = state
        self.event = event


class AutopilotCancelledError(AgenticError):
    """Raised when the autopilot observes a cancellation request."""


class InconsistentStateError(AgenticError):
    """Raised when no further progress is possible but work remains claimed."""


class ExecutorError(AgenticError):
    def __init__(self, message: str, *, executor: str | None = None) -> None:
        super().__init__(message)
        self.executor = executor


class ExecutorNotImplementedError(ExecutorError):
    """Raised by executor variants that have no backend yet."""
