from agentic.tasks.models import (
    BACKLOG,
    COLLECTIONS,
    DONE,
    IN_PROGRESS,
    SubTask,
    Task,
    TaskStatus,
)
from agentic.tasks.readiness import (
    ReadinessCheck,
    ReadinessResult,
    can_claim_task,
    format_readiness_result,
)
from agentic.tasks.store import AuditReport, TaskStore

__all__ = [
    "AuditReport",
    "BACKLOG",
    "COLLECTIONS",
    "DONE",
    "IN_PROGRESS",
    "ReadinessCheck",
    "ReadinessResult",
    "SubTask",
    "Task",
    "TaskStatus",
    "TaskStore",
    "can_claim_task",
    "format_readiness_result",
]
