from .status import TodoStatus, normalize_todo_status
from .todo_item import TodoItem
from .remote_task import RemoteStatus, RemoteTask
from .commit_info import CommitInfo, ParsedCommit, parse_commit_message, branch_tag, extract_task_reference
from .commit_lifecycle import (
    CommitEvent,
    CommitStatus,
    LifecycleRule,
    LIFECYCLE_RULES,
    classify_branch,
    transition,
    is_forward,
)

__all__ = [
    "TodoStatus",
    "normalize_todo_status",
    "TodoItem",
    "RemoteStatus",
    "RemoteTask",
    # Commits
    "CommitInfo",
    "ParsedCommit",
    "parse_commit_message",
    "branch_tag",
    "extract_task_reference",
    "CommitEvent",
    "CommitStatus",
    "LifecycleRule",
    "LIFECYCLE_RULES",
    "classify_branch",
    "transition",
    "is_forward",
]
