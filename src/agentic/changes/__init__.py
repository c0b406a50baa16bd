from agentic.changes.manager import ChangeManager, to_kebab_case
from agentic.changes.models import Change, ChangeProgress, ChangeStatus, SyncResult
from agentic.changes.parser import (
    TaskDetail,
    TaskEntry,
    parse_task_detail,
    parse_task_detail_file,
    parse_task_list,
    parse_tasks_file,
)

__all__ = [
    "Change",
    "ChangeManager",
    "ChangeProgress",
    "ChangeStatus",
    "SyncResult",
    "TaskDetail",
    "TaskEntry",
    "parse_task_detail",
    "parse_task_detail_file",
    "parse_task_list",
    "parse_tasks_file",
    "to_kebab_case",
]
