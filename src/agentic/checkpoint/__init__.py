from agentic.checkpoint.manager import (
    Checkpoint,
    CheckpointManager,
    create_checkpoint_from_result,
    get_progress,
    should_checkpoint,
)

__all__ = [
    "Checkpoint",
    "CheckpointManager",
    "create_checkpoint_from_result",
    "get_progress",
    "should_checkpoint",
]
