from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from core import CommitStatus, RemoteTask, TodoStatus

DEFAULT_STATUS_MAPPING: Dict[str, str] = {
    TodoStatus.PENDING.code: "to do",
    TodoStatus.IN_PROGRESS.code: "in progress",
    TodoStatus.COMPLETED.code: "completed",
}
DEFAULT_IN_PROGRESS_STATUSES = ("in progress",)
DEFAULT_COMPLETED_STATUSES = ("completed", "complete", "done", "closed")
CLOSED_STATUS_TYPES = ("closed", "done")

DEFAULT_COMMIT_STATUSES: Dict[CommitStatus, str] = {status: status.label.lower() for status in CommitStatus}


def _lowered(values: Iterable[str]) -> FrozenSet[str]:
    return frozenset(str(v).strip().lower() for v in values if str(v).strip())


@dataclass(frozen=True)
class StatusMapping:
    """Translation between local todo statuses and remote status names.

    Comparison is case-insensitive. Remote statuses listed as in-progress
    or completed equivalents are treated the same as the mapped target
    when deciding parent propagation.
    """

    table: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_STATUS_MAPPING))
    in_progress: FrozenSet[str] = field(default_factory=lambda: _lowered(DEFAULT_IN_PROGRESS_STATUSES))
    completed: FrozenSet[str] = field(default_factory=lambda: _lowered(DEFAULT_COMPLETED_STATUSES))

    @classmethod
    def build(
        cls,
        table: Optional[Mapping[str, str]] = None,
        in_progress: Iterable[str] = (),
        completed: Iterable[str] = (),
    ) -> "StatusMapping":
        merged = dict(DEFAULT_STATUS_MAPPING)
        merged.update({k: str(v) for k, v in (table or {}).items() if v})
        return cls(
            table=merged,
            in_progress=_lowered(list(DEFAULT_IN_PROGRESS_STATUSES) + [merged["in_progress"]] + list(in_progress)),
            completed=_lowered(list(DEFAULT_COMPLETED_STATUSES) + [merged["completed"]] + list(completed)),
        )

    def to_remote(self, status: TodoStatus) -> str:
        return self.table.get(status.code) or status.default_remote

    def to_local(self, remote_status: str) -> TodoStatus:
        token = (remote_status or "").strip().lower()
        if token in self.completed:
            return TodoStatus.COMPLETED
        if token in self.in_progress:
            return TodoStatus.IN_PROGRESS
        return TodoStatus.PENDING

    @staticmethod
    def same(left: str, right: str) -> bool:
        return (left or "").strip().lower() == (right or "").strip().lower()

    def is_completed(self, task: RemoteTask) -> bool:
        if task.status_type.lower() in CLOSED_STATUS_TYPES:
            return True
        return (task.status or "").strip().lower() in self.completed

    def is_in_progress(self, task: RemoteTask) -> bool:
        return (task.status or "").strip().lower() in self.in_progress


@dataclass(frozen=True)
class RetryPolicy:
    base_delay: float = 5.0
    factor: float = 2.0
    max_delay: float = 300.0
    max_attempts: int = 5

    def delay_for(self, attempt: int) -> float:
        exponent = max(0, int(attempt) - 1)
        return min(self.max_delay, self.base_delay * (self.factor ** exponent))


@dataclass(frozen=True)
class SyncSettings:
    tasks_list_id: Optional[str] = None
    commits_list_id: Optional[str] = None
    todo_sync_enabled: bool = True
    commit_tracking_enabled: bool = True
    status_mapping: StatusMapping = field(default_factory=StatusMapping)
    commit_statuses: Mapping[CommitStatus, str] = field(default_factory=lambda: dict(DEFAULT_COMMIT_STATUSES))
    enforce_forward_commits: bool = False
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    auto_assign: bool = False
    assignee_id: Optional[int] = None

    def commit_status_name(self, status: CommitStatus) -> str:
        return self.commit_statuses.get(status) or status.label.lower()

    def commit_status_from_name(self, name: str) -> Optional[CommitStatus]:
        token = (name or "").strip().lower()
        for status in CommitStatus:
            if self.commit_status_name(status).lower() == token:
                return status
        return None

    def assignees(self) -> list:
        if self.auto_assign and self.assignee_id:
            return [self.assignee_id]
        return []
