import logging
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from application.commit_tracker import CommitTracker, current_branch
from application.identity_index import IdentityIndex
from application.ports import MappingStore, RemoteTaskStore
from application.reconciler import SyncReport, TodoReconciler
from application.status_gate import StatusGate
from application.sync_service import SyncService
from application.sync_settings import SyncSettings
from core import CommitInfo, RemoteTask, TodoItem, classify_branch
from infrastructure.warning_cache import warn_once

logger = logging.getLogger("todo_sync.service")


class TodoSyncService(SyncService):
    """Todo reconciliation plus commit tracking behind one facade.

    A feature whose list is not configured, or which is switched off in
    the settings, turns into a no-op.
    """

    def __init__(
        self,
        settings: SyncSettings,
        store: RemoteTaskStore,
        identity_store: Optional[MappingStore] = None,
        commit_store: Optional[MappingStore] = None,
        branch_provider: Callable[[], str] = current_branch,
    ) -> None:
        self.settings = settings
        self.store = store
        self.gate = StatusGate(store, should_warn=warn_once)
        self._branch_provider = branch_provider
        self.identity: Optional[IdentityIndex] = None
        self.reconciler: Optional[TodoReconciler] = None
        self.tracker: Optional[CommitTracker] = None
        if settings.tasks_list_id:
            self.identity = IdentityIndex(settings.tasks_list_id, backing=identity_store)
            self.reconciler = TodoReconciler(store, settings, identity=self.identity, gate=self.gate)
        if settings.commits_list_id and commit_store is not None:
            self.tracker = CommitTracker(
                store,
                settings,
                commit_store,
                gate=self.gate,
                identity=self.identity,
                branch_provider=branch_provider,
            )

    @property
    def enabled(self) -> bool:
        return self.reconciler is not None and self.settings.todo_sync_enabled

    @property
    def commit_tracking_enabled(self) -> bool:
        return self.tracker is not None and self.tracker.enabled

    def sync_batch(self, items: Iterable[Any]) -> Optional[SyncReport]:
        if not self.enabled:
            logger.debug("todo sync skipped: no tasks list configured or sync disabled")
            return None
        return self.reconciler.sync_batch(items)

    def get_sync_status(self) -> Dict[str, Any]:
        if self.reconciler is None:
            return {"enabled": False, "queue_size": 0, "in_progress": False, "list_id": None}
        status = self.reconciler.get_sync_status()
        status["enabled"] = self.enabled
        return status

    def force_sync(self) -> None:
        if self.reconciler is not None:
            self.reconciler.force_sync()

    def pull_item(self, remote_id: str) -> Optional[TodoItem]:
        if self.reconciler is None:
            return None
        return self.reconciler.pull_item(remote_id)

    def classify_commit(self, branch: Optional[str] = None) -> str:
        if self.tracker is not None:
            return self.tracker.classify_commit(branch)
        status = classify_branch(branch if branch is not None else self._branch_provider())
        return self.settings.commit_status_name(status)

    def track_commit(self, commit: CommitInfo) -> Optional[RemoteTask]:
        if not self.commit_tracking_enabled:
            logger.debug("commit tracking skipped: no commits list configured or tracking disabled")
            return None
        return self.tracker.track_commit(commit)

    def record_commit_event(
        self, commit_hash: str, event: str, context: Optional[Mapping[str, Any]] = None
    ) -> Optional[str]:
        if not self.commit_tracking_enabled:
            return None
        return self.tracker.record_commit_event(commit_hash, event, context)

    def close(self) -> None:
        if self.reconciler is not None:
            self.reconciler.close()
