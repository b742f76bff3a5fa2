import logging
import subprocess
from typing import Any, Callable, Dict, Mapping, Optional, Union

from application.errors import RemoteStoreError
from application.identity_index import IdentityIndex
from application.ports import MappingStore, RemoteTaskStore
from application.status_gate import ListRole, StatusGate
from application.sync_settings import SyncSettings
from core import (
    CommitEvent,
    CommitInfo,
    CommitStatus,
    RemoteTask,
    branch_tag,
    classify_branch,
    extract_task_reference,
    is_forward,
    parse_commit_message,
    transition,
)

logger = logging.getLogger("todo_sync.commits")

DEFAULT_BRANCH = "local"


def current_branch() -> str:
    """Name of the checked-out git branch, ``local`` outside a repository."""
    try:
        result = subprocess.run(
            ["git", "branch", "--show-current"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return DEFAULT_BRANCH
    return result.stdout.strip() or DEFAULT_BRANCH


def commit_task_name(commit: CommitInfo) -> str:
    parsed = parse_commit_message(commit.message)
    return f"[COMMIT] {parsed.type}: {parsed.description}"


def commit_task_description(commit: CommitInfo, branch: str) -> str:
    return "\n".join(
        [
            "Commit details",
            "",
            f"Hash: {commit.hash}",
            f"Author: {commit.author or 'Unknown'}",
            f"Timestamp: {commit.timestamp}",
            f"Branch: {branch}",
            "",
            commit.message,
            "",
            f"Branch tag: {branch_tag(branch)}",
        ]
    )


class CommitTracker:
    """Tracks commits as tasks in the commits list.

    Each tracked commit becomes one remote task whose status follows the
    commit lifecycle. The hash -> task id pairs live in ``mapping_store``
    so later push/merge/revert/deploy events can find the task again.
    """

    def __init__(
        self,
        store: RemoteTaskStore,
        settings: SyncSettings,
        mapping_store: MappingStore,
        gate: Optional[StatusGate] = None,
        identity: Optional[IdentityIndex] = None,
        branch_provider: Callable[[], str] = current_branch,
    ) -> None:
        self.store = store
        self.settings = settings
        self.list_id = settings.commits_list_id
        self.mapping_store = mapping_store
        self.gate = gate or StatusGate(store)
        self.identity = identity
        self._branch_provider = branch_provider
        self._gate_passed = False

    @property
    def enabled(self) -> bool:
        return bool(self.settings.commit_tracking_enabled and self.list_id)

    def classify_commit(self, branch: Optional[str] = None) -> str:
        status = classify_branch(branch if branch is not None else self._branch_provider())
        return self.settings.commit_status_name(status)

    def track_commit(self, commit: Union[CommitInfo, Mapping[str, Any]]) -> Optional[RemoteTask]:
        if not self.enabled:
            logger.debug("commit tracking is disabled or no commits list is configured")
            return None
        info = commit if isinstance(commit, CommitInfo) else CommitInfo(**dict(commit))
        self._ensure_gate()
        branch = info.branch or self._branch_provider()
        status = classify_branch(branch)
        fields: Dict[str, Any] = {
            "name": commit_task_name(info),
            "description": commit_task_description(info, branch),
            "status": self.settings.commit_status_name(status),
        }
        try:
            task = self.store.create_task(self.list_id, fields)
        except RemoteStoreError as exc:
            logger.warning("failed to track commit %s: %s", info.short_hash, exc)
            return None
        self.mapping_store.set(info.hash, task.id)
        logger.info("tracked commit %s as task %s (%s)", info.short_hash, task.id, status.label)
        self._link_to_item(info, branch)
        return task

    def record_commit_event(
        self,
        commit_hash: str,
        event: Union[str, CommitEvent],
        context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        """Move a tracked commit's task to the state ``event`` implies.

        Returns the remote status name written, or None when nothing was
        written.
        """
        if not self.enabled:
            logger.debug("commit tracking is disabled or no commits list is configured")
            return None
        kind = CommitEvent.from_string(event)
        task_id = self.mapping_store.get(commit_hash)
        if not task_id:
            logger.warning("no task found for commit %s", commit_hash)
            return None
        self._ensure_gate()
        target = transition(kind, context)
        try:
            if self.settings.enforce_forward_commits and not self._moves_forward(task_id, target):
                return None
            name = self.settings.commit_status_name(target)
            self.store.update_task_status(task_id, name)
        except RemoteStoreError as exc:
            logger.warning("failed to update commit %s on %s: %s", commit_hash, kind.value, exc)
            return None
        logger.info("commit %s moved to %s after %s", commit_hash, name, kind.value)
        return name

    def _ensure_gate(self) -> None:
        if self._gate_passed:
            return
        self.gate.ensure(self.list_id, ListRole.COMMITS)
        self._gate_passed = True

    def _moves_forward(self, task_id: str, target: CommitStatus) -> bool:
        task = self.store.get_task(task_id, force_refresh=True)
        current = self.settings.commit_status_from_name(task.status)
        if current is not None and not is_forward(current, target):
            logger.info("not moving task %s back from %s to %s", task_id, current.label, target.label)
            return False
        return True

    def _link_to_item(self, commit: CommitInfo, branch: str) -> None:
        if self.identity is None:
            return
        local_id = commit.task_id or extract_task_reference(commit.message)
        if not local_id:
            return
        remote_id = self.identity.lookup(local_id)
        if not remote_id:
            logger.debug("commit %s references %s, which is not synced", commit.short_hash, local_id)
            return
        text = f"Commit {commit.short_hash} on {branch}: {parse_commit_message(commit.message).description}"
        try:
            self.store.add_task_comment(remote_id, text)
        except RemoteStoreError as exc:
            logger.warning("failed to link commit %s to task %s: %s", commit.short_hash, remote_id, exc)
            return
        logger.info("linked commit %s to task %s", commit.short_hash, remote_id)
