"""Reconciliation of local todo items against one remote task list.

One pass takes the queued batch, reads the current remote snapshot, and
for every item (in insertion order) decides between update, create and
skip:

* a live identity mapping means update;
* otherwise a remote task whose ``todo_id`` custom field names the item,
  then one whose name equals the item content, is adopted;
* otherwise the item is created, unless it is already completed.

Writes are status-only and skipped when nothing changed. A mapped task
that turns out to be gone (a 404 on read or write) loses its mapping and
the item falls back to matching or creation in the same pass. Items with a
parent then drive two propagation rules on the parent's remote task:
a child in progress starts the parent, and a completed child triggers a
fresh read of all siblings to decide whether the parent is complete.

Passes never overlap: a batch arriving while one is running is merged
into the queue and picked up when the running pass ends. Items whose
remote calls fail are handed to the retry queue.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from application.errors import RemoteNotFoundError, RemoteStoreError
from application.identity_index import IdentityIndex
from application.ports import RemoteTaskStore
from application.retry_queue import RetryQueue
from application.status_gate import ListRole, StatusGate
from application.sync_settings import SyncSettings
from core import RemoteTask, TodoItem, TodoStatus
from core.task_analyzer import PRIORITY_CODES, enrich, format_duration

logger = logging.getLogger("todo_sync.engine")

# Custom field carrying the local item id on tasks created elsewhere.
TODO_ID_FIELD = "todo_id"

_RANK = {TodoStatus.PENDING: 0, TodoStatus.IN_PROGRESS: 1, TodoStatus.COMPLETED: 2}


class ItemSyncState(Enum):
    NEW = "new"
    SYNCHRONIZED = "synchronized"
    UPDATED = "updated"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SyncReport:
    created: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    propagated: List[str] = field(default_factory=list)  # remote ids of parents moved by propagation

    @property
    def writes(self) -> int:
        return len(self.created) + len(self.updated) + len(self.propagated)

    def merge(self, other: "SyncReport") -> "SyncReport":
        for name in ("created", "updated", "unchanged", "skipped", "failed", "propagated"):
            getattr(self, name).extend(getattr(other, name))
        return self


class _PassContext:
    """Remote state seen during one pass."""

    def __init__(self, tasks: Iterable[RemoteTask]) -> None:
        self.by_id: Dict[str, RemoteTask] = {}
        self.by_todo_id: Dict[str, RemoteTask] = {}
        self.missing: set = set()
        for task in tasks:
            self.remember(task)

    def remember(self, task: RemoteTask) -> None:
        self.by_id[task.id] = task
        local_id = _todo_id_of(task)
        if local_id:
            self.by_todo_id[local_id] = task

    def find_by_todo_id(self, local_id: str) -> Optional[RemoteTask]:
        task = self.by_todo_id.get(local_id)
        if task is None or task.id in self.missing:
            return None
        return task

    def find_by_name(self, name: str, claimed: Callable[[str], bool]) -> Optional[RemoteTask]:
        for task in self.by_id.values():
            if task.id in self.missing or task.name != name:
                continue
            if claimed(task.id):
                continue
            return task
        return None


ItemInput = Union[TodoItem, Mapping[str, Any]]


class TodoReconciler:
    def __init__(
        self,
        store: RemoteTaskStore,
        settings: SyncSettings,
        identity: Optional[IdentityIndex] = None,
        gate: Optional[StatusGate] = None,
        retry_queue: Optional[RetryQueue] = None,
        analyzer: Callable[[TodoItem], TodoItem] = enrich,
    ) -> None:
        if not settings.tasks_list_id:
            raise ValueError("tasks list id is required for todo sync")
        self.store = store
        self.settings = settings
        self.list_id: str = settings.tasks_list_id
        self.mapping = settings.status_mapping
        self.identity = identity or IdentityIndex(self.list_id)
        self.gate = gate or StatusGate(store)
        self.retry_queue = retry_queue or RetryQueue(self.redrive, settings.retry)
        self.analyzer = analyzer
        self._lock = Lock()
        self._queue: Dict[str, TodoItem] = {}
        self._in_flight = False
        self._gate_passed = False
        self._states: Dict[str, ItemSyncState] = {}
        self._synced_status: Dict[str, TodoStatus] = {}
        self.last_report: Optional[SyncReport] = None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def sync_batch(self, items: Iterable[ItemInput]) -> SyncReport:
        if not self.settings.todo_sync_enabled:
            logger.debug("todo sync is disabled")
            return SyncReport()
        self._ensure_gate()
        self.enqueue(items)
        return self.process_queue()

    def enqueue(self, items: Iterable[ItemInput]) -> int:
        count = 0
        for raw in items:
            item = raw if isinstance(raw, TodoItem) else TodoItem.from_dict(dict(raw))
            with self._lock:
                self._queue[item.id] = item
                self._states.setdefault(item.id, ItemSyncState.NEW)
            self.retry_queue.discard(item.id)
            count += 1
        return count

    def redrive(self, items: List[TodoItem]) -> SyncReport:
        with self._lock:
            fresh = [item for item in items if item.id not in self._queue]
            for item in fresh:
                self._queue[item.id] = item
        return self.process_queue()

    def process_queue(self) -> SyncReport:
        report = SyncReport()
        ran = False
        while True:
            with self._lock:
                if self._in_flight or not self._queue:
                    break
                self._in_flight = True
                batch = list(self._queue.values())
                self._queue.clear()
            ran = True
            try:
                report.merge(self._run_pass(batch))
            finally:
                with self._lock:
                    self._in_flight = False
        if ran:
            self.last_report = report
        return report

    def force_sync(self) -> None:
        logger.info("forcing sync of queued and retrying todos")
        self.retry_queue.flush()
        self.process_queue()

    def get_sync_status(self) -> Dict[str, Any]:
        with self._lock:
            queue_size = len(self._queue)
            in_progress = self._in_flight
            failed = sorted(k for k, v in self._states.items() if v is ItemSyncState.FAILED)
        return {
            "queue_size": queue_size,
            "in_progress": in_progress,
            "list_id": self.list_id,
            "retry_pending": self.retry_queue.pending(),
            "tracked": len(self.identity),
            "failed": failed,
            "dead_letters": sorted(self.retry_queue.dead_letters),
        }

    def state_of(self, item_id: str) -> Optional[ItemSyncState]:
        with self._lock:
            return self._states.get(item_id)

    def pull_item(self, remote_id: str) -> Optional[TodoItem]:
        """Build the local view of a remote task.

        The local id comes from the identity index, then the task's
        ``todo_id`` custom field, then the remote id itself. Returns None
        when the task cannot be read.
        """
        try:
            task = self.store.get_task(remote_id, force_refresh=True)
        except RemoteNotFoundError:
            local_id = self.identity.reverse_lookup(remote_id)
            if local_id:
                self.identity.invalidate(local_id)
            logger.warning("remote task %s no longer exists", remote_id)
            return None
        except RemoteStoreError as exc:
            logger.warning("failed to pull task %s: %s", remote_id, exc)
            return None
        local_id = self.identity.reverse_lookup(task.id)
        if local_id is None:
            local_id = _todo_id_of(task)
            if local_id and self.identity.lookup(local_id) is None:
                self.identity.upsert(local_id, task.id)
        if self.mapping.is_completed(task):
            status = TodoStatus.COMPLETED
        else:
            status = self.mapping.to_local(task.status)
        parent_id = self.identity.reverse_lookup(task.parent) if task.parent else None
        return TodoItem(
            id=local_id or task.id,
            content=task.name,
            status=status,
            parent_id=parent_id,
            remote_task_id=task.id,
        )

    def close(self) -> None:
        self.retry_queue.close()

    # ------------------------------------------------------------------
    # Pass internals
    # ------------------------------------------------------------------

    def _ensure_gate(self) -> None:
        if self._gate_passed:
            return
        self.gate.ensure(self.list_id, ListRole.TASKS)
        self._gate_passed = True

    def _set_state(self, item_id: str, state: ItemSyncState) -> None:
        with self._lock:
            self._states[item_id] = state

    def _run_pass(self, batch: List[TodoItem]) -> SyncReport:
        report = SyncReport()
        try:
            snapshot = self.store.get_tasks_in_list(self.list_id, include_subtasks=True)
        except RemoteStoreError as exc:
            logger.warning("could not read list %s, requeueing %d todos: %s", self.list_id, len(batch), exc)
            for item in batch:
                self._fail(item, report)
            return report
        ctx = _PassContext(snapshot)
        for item in batch:
            try:
                self._sync_item(item, ctx, report)
            except RemoteStoreError as exc:
                logger.warning("failed to sync todo %s: %s", item.id, exc)
                self._fail(item, report)
        logger.debug(
            "pass done: %d created, %d updated, %d unchanged, %d skipped, %d failed",
            len(report.created),
            len(report.updated),
            len(report.unchanged),
            len(report.skipped),
            len(report.failed),
        )
        return report

    def _fail(self, item: TodoItem, report: SyncReport) -> None:
        self._set_state(item.id, ItemSyncState.FAILED)
        report.failed.append(item.id)
        with self._lock:
            superseded = item.id in self._queue
        if not superseded:
            self.retry_queue.schedule(item)

    def _sync_item(self, item: TodoItem, ctx: _PassContext, report: SyncReport) -> None:
        enriched = self.analyzer(item)
        remote = self._resolve_remote(item, ctx)
        if remote is not None:
            try:
                remote = self._update_remote(item, remote, ctx, report)
            except RemoteNotFoundError:
                logger.warning("remote task %s for todo %s vanished during update", remote.id, item.id)
                self._forget(item.id, remote.id, ctx)
                remote = self._resolve_remote(item, ctx)
                if remote is not None:
                    remote = self._update_remote(item, remote, ctx, report)
        if remote is None:
            if item.is_completed:
                logger.debug("todo %s is completed and was never synced; not creating it", item.id)
                self._set_state(item.id, ItemSyncState.SKIPPED)
                report.skipped.append(item.id)
                return
            remote = self._create_remote(item, enriched, ctx)
            self._set_state(item.id, ItemSyncState.SYNCHRONIZED)
            report.created.append(item.id)
        item.remote_task_id = remote.id
        with self._lock:
            self._synced_status[item.id] = item.status
        if item.parent_id:
            self._propagate(item, ctx, report)
        self.retry_queue.reset(item.id)

    def _resolve_remote(self, item: TodoItem, ctx: _PassContext) -> Optional[RemoteTask]:
        remote_id = self.identity.lookup(item.id) or item.remote_task_id
        if remote_id and remote_id not in ctx.missing:
            task = ctx.by_id.get(remote_id)
            if task is None:
                task = self._fetch_existing(item.id, remote_id, ctx)
            if task is not None:
                self.identity.upsert(item.id, task.id)
                return task
        claimed = lambda task_id: self.identity.reverse_lookup(task_id) not in (None, item.id)
        task = ctx.find_by_todo_id(item.id)
        if task is not None and not claimed(task.id):
            logger.debug("todo %s matched remote task %s by %s field", item.id, task.id, TODO_ID_FIELD)
            self.identity.upsert(item.id, task.id)
            return task
        task = ctx.find_by_name(item.content, claimed)
        if task is not None:
            logger.debug("todo %s matched remote task %s by name", item.id, task.id)
            self.identity.upsert(item.id, task.id)
        return task

    def _fetch_existing(self, local_id: str, remote_id: str, ctx: _PassContext) -> Optional[RemoteTask]:
        try:
            task = self.store.get_task(remote_id, force_refresh=True)
        except RemoteNotFoundError:
            logger.warning("remote task %s for todo %s no longer exists; dropping mapping", remote_id, local_id)
            self._forget(local_id, remote_id, ctx)
            return None
        ctx.remember(task)
        return task

    def _forget(self, local_id: str, remote_id: str, ctx: _PassContext) -> None:
        if self.identity.lookup(local_id) == remote_id:
            self.identity.invalidate(local_id)
        ctx.missing.add(remote_id)
        with self._lock:
            self._synced_status.pop(local_id, None)

    def _update_remote(self, item: TodoItem, remote: RemoteTask, ctx: _PassContext, report: SyncReport) -> RemoteTask:
        target = self.mapping.to_remote(item.status)
        with self._lock:
            previous = self._synced_status.get(item.id)
        if previous is item.status or self.mapping.same(remote.status, target):
            self._set_state(item.id, ItemSyncState.SYNCHRONIZED)
            report.unchanged.append(item.id)
            return remote
        if previous is None and _RANK[self.mapping.to_local(remote.status)] > _RANK[item.status]:
            # First sight of this item: adopt remote progress instead of rolling it back.
            logger.debug("remote task %s is ahead of todo %s (%s); leaving it", remote.id, item.id, remote.status)
            self._set_state(item.id, ItemSyncState.SYNCHRONIZED)
            report.unchanged.append(item.id)
            return remote
        updated = self.store.update_task_status(remote.id, target)
        ctx.remember(updated)
        logger.info("updated task %s status from %s to %s", remote.id, remote.status, target)
        self._set_state(item.id, ItemSyncState.UPDATED)
        report.updated.append(item.id)
        return updated

    def _create_remote(self, item: TodoItem, enriched: TodoItem, ctx: _PassContext) -> RemoteTask:
        fields: Dict[str, Any] = {
            "name": item.content,
            "description": _describe(enriched),
            "status": self.mapping.to_remote(item.status),
            "priority": PRIORITY_CODES.get(enriched.priority or "normal", PRIORITY_CODES["normal"]),
            "tags": list(enriched.tags),
        }
        if enriched.estimated_time:
            fields["time_estimate"] = enriched.estimated_time
        assignees = self.settings.assignees()
        if assignees:
            fields["assignees"] = assignees
        if item.parent_id:
            parent_remote = self.identity.lookup(item.parent_id)
            if parent_remote and parent_remote not in ctx.missing:
                fields["parent"] = parent_remote
        task = self.store.create_task(self.list_id, fields)
        ctx.remember(task)
        self.identity.upsert(item.id, task.id)
        logger.info("created task %s for todo %s", task.id, item.id)
        return task

    # ------------------------------------------------------------------
    # Parent propagation
    # ------------------------------------------------------------------

    def _propagate(self, item: TodoItem, ctx: _PassContext, report: SyncReport) -> None:
        if item.status is TodoStatus.PENDING:
            return
        parent = self._parent_task(item, ctx)
        if parent is None:
            return
        if item.status is TodoStatus.IN_PROGRESS:
            if not self.mapping.is_in_progress(parent) and not self.mapping.is_completed(parent):
                self._move_parent(parent, TodoStatus.IN_PROGRESS, ctx, report)
            return

        fresh = self.store.get_tasks_in_list(self.list_id, include_subtasks=True, force_refresh=True)
        for task in fresh:
            ctx.remember(task)
        parent = ctx.by_id.get(parent.id, parent)
        siblings = [task for task in fresh if task.parent == parent.id]
        if not siblings:
            logger.debug("no subtasks visible under %s yet", parent.id)
            return
        if all(self.mapping.is_completed(task) for task in siblings):
            if not self.mapping.is_completed(parent):
                self._move_parent(parent, TodoStatus.COMPLETED, ctx, report)
        elif any(self.mapping.is_in_progress(task) for task in siblings):
            if not self.mapping.is_in_progress(parent) and not self.mapping.is_completed(parent):
                self._move_parent(parent, TodoStatus.IN_PROGRESS, ctx, report)

    def _parent_task(self, item: TodoItem, ctx: _PassContext) -> Optional[RemoteTask]:
        parent_id = item.parent_id or ""
        remote_id = self.identity.lookup(parent_id)
        if not remote_id or remote_id in ctx.missing:
            logger.debug("parent %s of todo %s is not synced; skipping propagation", parent_id, item.id)
            return None
        task = ctx.by_id.get(remote_id)
        if task is None:
            task = self._fetch_existing(parent_id, remote_id, ctx)
        return task

    def _move_parent(self, parent: RemoteTask, status: TodoStatus, ctx: _PassContext, report: SyncReport) -> None:
        target = self.mapping.to_remote(status)
        try:
            updated = self.store.update_task_status(parent.id, target)
        except RemoteNotFoundError:
            logger.warning("parent task %s no longer exists; dropping mapping", parent.id)
            parent_local = self.identity.reverse_lookup(parent.id)
            if parent_local:
                self._forget(parent_local, parent.id, ctx)
            else:
                ctx.missing.add(parent.id)
            return
        ctx.remember(updated)
        report.propagated.append(parent.id)
        logger.info("moved parent task %s from %s to %s", parent.id, parent.status, target)


def _todo_id_of(task: RemoteTask) -> Optional[str]:
    value = task.custom_fields.get(TODO_ID_FIELD)
    return str(value) if value not in (None, "") else None


def _describe(item: TodoItem) -> str:
    lines = [f"Todo ID: {item.id}"]
    if item.category:
        lines.append(f"Category: {item.category}")
    if item.priority:
        lines.append(f"Priority: {item.priority}")
    if item.estimated_time:
        lines.append(f"Estimated time: {format_duration(item.estimated_time)}")
    if item.tags:
        lines.append(f"Tags: {', '.join(item.tags)}")
    return "\n".join(lines)
