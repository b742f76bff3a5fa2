from typing import Protocol, Any, Optional, Dict, Iterable, Mapping
from core import CommitInfo, RemoteTask, TodoItem


class SyncService(Protocol):
    enabled: bool

    def sync_batch(self, items: Iterable[Any]) -> Optional[Any]:
        ...

    def get_sync_status(self) -> Dict[str, Any]:
        ...

    def force_sync(self) -> None:
        ...

    def pull_item(self, remote_id: str) -> Optional[TodoItem]:
        ...

    def classify_commit(self, branch: Optional[str] = None) -> str:
        ...

    def track_commit(self, commit: CommitInfo) -> Optional[RemoteTask]:
        ...

    def record_commit_event(self, commit_hash: str, event: str, context: Optional[Mapping[str, Any]] = None) -> Optional[str]:
        ...

    def close(self) -> None:
        ...
