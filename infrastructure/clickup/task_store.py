import logging
from typing import Any, Dict, List, Optional

from core import RemoteStatus, RemoteTask

from .rest_client import ClickUpClient, ClickUpNotFoundError
from .task_cache import TaskCache

logger = logging.getLogger("todo_sync.clickup")

# ClickUp returns at most this many tasks per list page.
PAGE_SIZE = 100
MAX_PAGES = 50


class ClickUpTaskStore:
    """``RemoteTaskStore`` backed by the ClickUp REST API.

    Reads go through a TTL cache unless ``force_refresh`` is set; forced
    reads always hit the API and refresh the cache. Writes replace the
    cached task and drop list snapshots. A 404 evicts the task and every
    list snapshot, since any of them may still list it. List statuses are
    never cached.
    """

    def __init__(self, client: ClickUpClient, cache: Optional[TaskCache] = None) -> None:
        self.client = client
        self.cache = cache or TaskCache()

    def create_task(self, list_id: str, fields: Dict[str, Any]) -> RemoteTask:
        payload = {key: value for key, value in fields.items() if value not in (None, "", [])}
        data = self.client.request("post", f"/list/{list_id}/task", payload=payload)
        task = _with_list(RemoteTask.from_api(data), list_id)
        self.cache.put_task(task)
        self.cache.drop_lists(list_id)
        return task

    def update_task(self, task_id: str, fields: Dict[str, Any]) -> RemoteTask:
        try:
            data = self.client.request("put", f"/task/{task_id}", payload=dict(fields))
        except ClickUpNotFoundError:
            self._evict(task_id)
            raise
        task = RemoteTask.from_api(data)
        self.cache.put_task(task)
        self.cache.drop_lists(task.list_id)
        return task

    def update_task_status(self, task_id: str, status: str) -> RemoteTask:
        return self.update_task(task_id, {"status": status})

    def get_task(self, task_id: str, force_refresh: bool = False) -> RemoteTask:
        if not force_refresh:
            cached = self.cache.get_task(task_id)
            if cached is not None:
                return cached
        try:
            data = self.client.request("get", f"/task/{task_id}")
        except ClickUpNotFoundError:
            self._evict(task_id)
            raise
        task = RemoteTask.from_api(data)
        self.cache.put_task(task)
        return task

    def get_tasks_in_list(
        self, list_id: str, include_subtasks: bool = False, force_refresh: bool = False
    ) -> List[RemoteTask]:
        if not force_refresh:
            cached = self.cache.get_list(list_id, include_subtasks)
            if cached is not None:
                return cached
        tasks: List[RemoteTask] = []
        for page in range(MAX_PAGES):
            params = {
                "page": page,
                "include_closed": "true",
                "subtasks": "true" if include_subtasks else "false",
            }
            data = self.client.request("get", f"/list/{list_id}/task", params=params)
            batch = data.get("tasks") or []
            tasks.extend(_with_list(RemoteTask.from_api(raw), list_id) for raw in batch)
            if data.get("last_page") or len(batch) < PAGE_SIZE:
                break
        else:
            logger.warning("list %s has more than %d pages of tasks; reading stopped early", list_id, MAX_PAGES)
        self.cache.put_list(list_id, include_subtasks, tasks)
        return tasks

    def get_list_statuses(self, list_id: str) -> List[RemoteStatus]:
        data = self.client.request("get", f"/list/{list_id}")
        return [RemoteStatus.from_api(raw) for raw in data.get("statuses") or []]

    def add_task_comment(self, task_id: str, text: str) -> None:
        self.client.request("post", f"/task/{task_id}/comment", payload={"comment_text": text, "notify_all": False})

    def _evict(self, task_id: str) -> None:
        logger.debug("task %s not found; evicting it and cached lists", task_id)
        self.cache.invalidate_task(task_id)
        self.cache.drop_lists()


def _with_list(task: RemoteTask, list_id: str) -> RemoteTask:
    if not task.list_id:
        task.list_id = list_id
    return task
