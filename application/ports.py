from typing import Any, Dict, List, Optional, Protocol

from core import RemoteStatus, RemoteTask


class RemoteTaskStore(Protocol):
    """Operations the engine needs from the remote project-management store.

    Implementations raise the ``application.errors`` taxonomy. Reads with
    ``force_refresh=True`` must bypass every cache.
    """

    def create_task(self, list_id: str, fields: Dict[str, Any]) -> RemoteTask:
        ...

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> RemoteTask:
        ...

    def update_task_status(self, task_id: str, status: str) -> RemoteTask:
        ...

    def get_task(self, task_id: str, force_refresh: bool = False) -> RemoteTask:
        ...

    def get_tasks_in_list(
        self, list_id: str, include_subtasks: bool = False, force_refresh: bool = False
    ) -> List[RemoteTask]:
        ...

    def get_list_statuses(self, list_id: str) -> List[RemoteStatus]:
        ...

    def add_task_comment(self, task_id: str, text: str) -> None:
        ...


class MappingStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...

    def load_all(self) -> Dict[str, str]:
        ...

    def replace_all(self, data: Dict[str, str]) -> None:
        ...
