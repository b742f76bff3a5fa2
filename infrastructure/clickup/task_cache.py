import time
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from core import RemoteTask

DEFAULT_TTL_SECONDS = 300

ListKey = Tuple[str, bool]


class TaskCache:
    """In-memory TTL cache for single tasks and whole-list snapshots."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._tasks: Dict[str, Tuple[float, RemoteTask]] = {}
        self._lists: Dict[ListKey, Tuple[float, List[RemoteTask]]] = {}

    def get_task(self, task_id: str) -> Optional[RemoteTask]:
        with self._lock:
            entry = self._tasks.get(task_id)
            if entry is None:
                return None
            if self._expired(entry[0]):
                del self._tasks[task_id]
                return None
            return entry[1]

    def put_task(self, task: RemoteTask) -> None:
        with self._lock:
            self._tasks[task.id] = (self._clock(), task)

    def invalidate_task(self, task_id: str) -> None:
        with self._lock:
            self._tasks.pop(task_id, None)

    def get_list(self, list_id: str, include_subtasks: bool) -> Optional[List[RemoteTask]]:
        key = (list_id, include_subtasks)
        with self._lock:
            entry = self._lists.get(key)
            if entry is None:
                return None
            if self._expired(entry[0]):
                del self._lists[key]
                return None
            return list(entry[1])

    def put_list(self, list_id: str, include_subtasks: bool, tasks: List[RemoteTask]) -> None:
        now = self._clock()
        with self._lock:
            self._lists[(list_id, include_subtasks)] = (now, list(tasks))
            for task in tasks:
                self._tasks[task.id] = (now, task)

    def drop_lists(self, list_id: Optional[str] = None) -> None:
        with self._lock:
            if list_id is None:
                self._lists.clear()
                return
            for key in [k for k in self._lists if k[0] == list_id]:
                del self._lists[key]

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()
            self._lists.clear()

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl_seconds
