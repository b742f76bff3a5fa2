from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

from .status import TodoStatus


@dataclass
class TodoItem:
    id: str
    content: str
    status: TodoStatus = TodoStatus.PENDING
    parent_id: Optional[str] = None
    remote_task_id: Optional[str] = None  # Filled in once the remote counterpart is known
    # Derived metadata (see core.task_analyzer)
    title: str = ""
    category: str = ""
    tags: List[str] = field(default_factory=list)
    priority: str = ""
    estimated_time: Optional[int] = None  # milliseconds
    actual_time: Optional[int] = None  # milliseconds
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, TodoStatus):
            self.status = TodoStatus.from_string(self.status)
        if not self.id:
            raise ValueError("todo item id is required")

    @property
    def is_completed(self) -> bool:
        return self.status is TodoStatus.COMPLETED

    def copy(self, **changes: Any) -> "TodoItem":
        if "tags" not in changes:
            changes["tags"] = list(self.tags)
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TodoItem":
        known = {f.name for f in fields(cls)}
        payload = {k: v for k, v in data.items() if k in known}
        if "parent_id" not in payload and data.get("parent"):
            payload["parent_id"] = data["parent"]
        if "remote_task_id" not in payload and data.get("clickup_task_id"):
            payload["remote_task_id"] = data["clickup_task_id"]
        payload["id"] = str(payload.get("id") or "")
        payload["content"] = str(payload.get("content") or "")
        payload["tags"] = list(payload.get("tags") or [])
        return cls(**payload)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "status": self.status.code,
        }
        optional = {
            "parent_id": self.parent_id,
            "remote_task_id": self.remote_task_id,
            "title": self.title,
            "category": self.category,
            "tags": list(self.tags),
            "priority": self.priority,
            "estimated_time": self.estimated_time,
            "actual_time": self.actual_time,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
        data.update({k: v for k, v in optional.items() if v not in (None, "", [])})
        return data
