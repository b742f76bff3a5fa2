import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import requests
import yaml

from application.sync_settings import RetryPolicy, StatusMapping, SyncSettings
from config import get_user_token, set_user_token
from core import CommitStatus
from infrastructure.clickup import ClickUpClient, ClickUpTaskStore, RateLimiter, TaskCache
from infrastructure.mapping_store import YamlMappingStore
from infrastructure.todo_sync_service import TodoSyncService

PROJECT_ROOT = Path(os.environ.get("TODO_SYNC_PROJECT_ROOT") or Path.cwd()).resolve()
CONFIG_PATH = PROJECT_ROOT / ".todo_sync.yaml"
TOKEN_ENV_VAR = "CLICKUP_API_KEY"
TASK_CACHE_TTL = int(os.getenv("TODO_SYNC_CACHE_TTL_SECONDS", "300"))
logger = logging.getLogger("todo_sync")
_TODO_SYNC: Optional[TodoSyncService] = None
_RATE_LIMITER = RateLimiter()


def _read_project_file(path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or CONFIG_PATH
    if not target.exists():
        data = _default_config_data()
        _write_project_file(data, target)
        return data
    try:
        data = yaml.safe_load(target.read_text()) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("cannot read %s, using defaults: %s", target, exc)
        return _default_config_data()
    return data if isinstance(data, dict) else {}


def _write_project_file(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    target = path or CONFIG_PATH
    if not data:
        if target.exists():
            target.unlink()
        return
    target.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")


def _default_config_data() -> Dict[str, Any]:
    retry = RetryPolicy()
    return {
        "lists": {"tasks": "", "commits": ""},
        "sync": {
            "todo_sync": True,
            "commit_tracking": True,
            "retry": {
                "base_delay": retry.base_delay,
                "factor": retry.factor,
                "max_delay": retry.max_delay,
                "max_attempts": retry.max_attempts,
            },
        },
        "statuses": {
            "mapping": {
                "pending": "to do",
                "in_progress": "in progress",
                "completed": "completed",
            },
            "in_progress": [],
            "completed": [],
        },
        "commits": {"statuses": {}, "enforce_forward": False},
        "assignee": {"auto_assign": False, "user_id": None},
        "state": {
            "identity": ".todo_sync/identity.yaml",
            "commit_map": ".todo_sync/commits.yaml",
        },
    }


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return dict(value) if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def load_settings(data: Mapping[str, Any]) -> SyncSettings:
    """Build immutable sync settings from a parsed ``.todo_sync.yaml``."""
    lists = _section(data, "lists")
    sync = _section(data, "sync")
    retry_raw = _section(sync, "retry")
    statuses = _section(data, "statuses")
    commits = _section(data, "commits")
    assignee = _section(data, "assignee")

    defaults = RetryPolicy()
    retry = RetryPolicy(
        base_delay=float(retry_raw.get("base_delay", defaults.base_delay)),
        factor=float(retry_raw.get("factor", defaults.factor)),
        max_delay=float(retry_raw.get("max_delay", defaults.max_delay)),
        max_attempts=int(retry_raw.get("max_attempts", defaults.max_attempts)),
    )
    mapping = StatusMapping.build(
        table=_section(statuses, "mapping"),
        in_progress=_as_list(statuses.get("in_progress")),
        completed=_as_list(statuses.get("completed")),
    )
    commit_statuses: Dict[CommitStatus, str] = {}
    for label, remote_name in _section(commits, "statuses").items():
        if not remote_name:
            continue
        try:
            commit_statuses[CommitStatus.from_label(str(label))] = str(remote_name)
        except ValueError:
            logger.warning("ignoring unknown commit status %r in %s", label, CONFIG_PATH.name)
    user_id = assignee.get("user_id")
    return SyncSettings(
        tasks_list_id=str(lists.get("tasks") or "") or None,
        commits_list_id=str(lists.get("commits") or "") or None,
        todo_sync_enabled=bool(sync.get("todo_sync", True)),
        commit_tracking_enabled=bool(sync.get("commit_tracking", True)),
        status_mapping=mapping,
        commit_statuses={**SyncSettings().commit_statuses, **commit_statuses},
        enforce_forward_commits=bool(commits.get("enforce_forward", False)),
        retry=retry,
        auto_assign=bool(assignee.get("auto_assign", False)),
        assignee_id=int(user_id) if user_id not in (None, "") else None,
    )


def resolve_token() -> str:
    env_token = (os.getenv(TOKEN_ENV_VAR) or "").strip()
    saved_token = get_user_token()
    # A token supplied through the environment is remembered for later runs.
    if env_token and not saved_token:
        try:
            set_user_token(env_token)
        except OSError as exc:
            logger.debug("could not save ClickUp token: %s", exc)
    return env_token or saved_token


def _state_path(base: Path, value: Any, default: str) -> Path:
    path = Path(str(value or default)).expanduser()
    return path if path.is_absolute() else base / path


def build_service(config_path: Optional[Path] = None, session: Optional[requests.Session] = None) -> TodoSyncService:
    target = config_path or CONFIG_PATH
    data = _read_project_file(target)
    settings = load_settings(data)
    state = _section(data, "state")
    base = target.parent
    client = ClickUpClient(session, resolve_token, _RATE_LIMITER)
    store = ClickUpTaskStore(client, TaskCache(ttl_seconds=TASK_CACHE_TTL))
    service = TodoSyncService(
        settings,
        store,
        identity_store=YamlMappingStore(_state_path(base, state.get("identity"), ".todo_sync/identity.yaml")),
        commit_store=YamlMappingStore(_state_path(base, state.get("commit_map"), ".todo_sync/commits.yaml")),
    )
    if not settings.tasks_list_id:
        logger.info("no tasks list configured in %s; todo sync is off", target)
    return service


def get_todo_sync() -> TodoSyncService:
    global _TODO_SYNC
    if _TODO_SYNC is None:
        _TODO_SYNC = build_service()
    return _TODO_SYNC


def reload_todo_sync() -> TodoSyncService:
    global _TODO_SYNC
    if _TODO_SYNC is not None:
        _TODO_SYNC.close()
    _TODO_SYNC = build_service()
    return _TODO_SYNC


def _update_project_section(section: str, **changes) -> None:
    data = _read_project_file()
    entry = _section(data, section)
    for key, value in changes.items():
        if value is None:
            entry.pop(key, None)
        else:
            entry[key] = value
    data[section] = entry
    _write_project_file(data)
    reload_todo_sync()


def update_sync_enabled(enabled: bool) -> bool:
    _update_project_section("sync", todo_sync=bool(enabled))
    return bool(enabled)


def update_list_ids(tasks: Optional[str] = None, commits: Optional[str] = None) -> None:
    changes = {key: value for key, value in (("tasks", tasks), ("commits", commits)) if value is not None}
    _update_project_section("lists", **changes)
