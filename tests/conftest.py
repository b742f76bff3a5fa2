from dataclasses import replace
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import config
from application.errors import RemoteNotFoundError
from core import RemoteStatus, RemoteTask
from infrastructure import warning_cache

TASK_STATUSES = ("to do", "in progress", "completed", "future", "fixing")
COMMIT_STATUSES = (
    "development update",
    "development push",
    "merged",
    "upstream merge",
    "production/testing",
    "production/staging",
    "production/final",
    "committed",
    "developing",
    "prototyping",
    "rejected",
)


class FakeTaskStore:
    """In-memory remote store recording every call."""

    def __init__(self, statuses=TASK_STATUSES, list_statuses=None):
        self.tasks = {}
        self.default_statuses = list(statuses)
        self.list_statuses = dict(list_statuses or {})
        self.calls = []
        self.comments = []
        self.fail_on = {}
        self._fail_once = {}
        self.on_create = None
        self.frozen = None
        self._counter = 0

    # failure injection -------------------------------------------------
    def fail_once(self, op, exc):
        self._fail_once.setdefault(op, []).append(exc)

    def _maybe_fail(self, op):
        pending = self._fail_once.get(op)
        if pending:
            raise pending.pop(0)
        if op in self.fail_on:
            raise self.fail_on[op]

    # helpers -----------------------------------------------------------
    def seed(self, task_id, name, status="to do", list_id="L1", parent=None, status_type="custom"):
        self.tasks[task_id] = RemoteTask(
            id=task_id, name=name, status=status, status_type=status_type, parent=parent, list_id=list_id
        )
        return self.tasks[task_id]

    def remove(self, task_id):
        del self.tasks[task_id]

    def freeze(self):
        """Serve the current tasks to every unforced list read, like a warm cache."""
        self.frozen = [replace(t) for t in self.tasks.values()]

    @property
    def creates(self):
        return [args for op, args in self.calls if op == "create"]

    @property
    def status_updates(self):
        return [args for op, args in self.calls if op == "update_status"]

    @property
    def writes(self):
        return [call for call in self.calls if call[0] in ("create", "update", "update_status")]

    # RemoteTaskStore ---------------------------------------------------
    def create_task(self, list_id, fields):
        self.calls.append(("create", (list_id, dict(fields))))
        self._maybe_fail("create")
        self._counter += 1
        task = RemoteTask(
            id=f"t{self._counter}",
            name=fields["name"],
            status=fields.get("status", "to do"),
            parent=fields.get("parent"),
            list_id=list_id,
            tags=list(fields.get("tags") or []),
            time_estimate=fields.get("time_estimate"),
        )
        self.tasks[task.id] = task
        if self.on_create:
            self.on_create(task)
        return replace(task)

    def update_task(self, task_id, fields):
        self.calls.append(("update", (task_id, dict(fields))))
        self._maybe_fail("update")
        return self._apply(task_id, fields)

    def update_task_status(self, task_id, status):
        self.calls.append(("update_status", (task_id, status)))
        self._maybe_fail("update_status")
        return self._apply(task_id, {"status": status})

    def _apply(self, task_id, fields):
        if task_id not in self.tasks:
            raise RemoteNotFoundError(task_id)
        self.tasks[task_id] = replace(self.tasks[task_id], **fields)
        return replace(self.tasks[task_id])

    def get_task(self, task_id, force_refresh=False):
        self.calls.append(("get", (task_id, force_refresh)))
        self._maybe_fail("get")
        if task_id not in self.tasks:
            raise RemoteNotFoundError(task_id)
        return replace(self.tasks[task_id])

    def get_tasks_in_list(self, list_id, include_subtasks=False, force_refresh=False):
        self.calls.append(("list", (list_id, include_subtasks, force_refresh)))
        self._maybe_fail("list")
        if force_refresh:
            self._maybe_fail("forced_list")
        elif self.frozen is not None:
            return [replace(t) for t in self.frozen if t.list_id == list_id]
        return [replace(t) for t in self.tasks.values() if t.list_id == list_id]

    def get_list_statuses(self, list_id):
        self.calls.append(("statuses", (list_id,)))
        self._maybe_fail("statuses")
        names = self.list_statuses.get(list_id, self.default_statuses)
        return [RemoteStatus(name=name, order=i) for i, name in enumerate(names)]

    def add_task_comment(self, task_id, text):
        self.calls.append(("comment", (task_id, text)))
        self._maybe_fail("comment")
        self.comments.append((task_id, text))


class DictMappingStore:
    def __init__(self, data=None):
        self.data = dict(data or {})
        self.replace_calls = 0

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value):
        self.data[key] = value

    def delete(self, key):
        return self.data.pop(key, None) is not None

    def load_all(self):
        return dict(self.data)

    def replace_all(self, data):
        self.replace_calls += 1
        self.data = dict(data)


class ManualTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def is_alive(self):
        return self.started and not self.cancelled

    def fire(self):
        return self.function()


@pytest.fixture(autouse=True)
def _isolated_user_state(tmp_path, monkeypatch):
    cache_dir = tmp_path / "cache"
    monkeypatch.setattr(warning_cache, "CACHE_DIR", cache_dir)
    monkeypatch.setattr(warning_cache, "WARNING_CACHE_FILE", cache_dir / "warnings.json")
    monkeypatch.setattr(warning_cache, "_SESSION_WARNINGS_SHOWN", set())
    monkeypatch.setattr(config, "USER_CONFIG_PATH", tmp_path / "user_config.yaml")
    monkeypatch.delenv("CLICKUP_API_KEY", raising=False)


@pytest.fixture
def store():
    return FakeTaskStore()


@pytest.fixture
def timers():
    created = []

    def factory(interval, function):
        timer = ManualTimer(interval, function)
        created.append(timer)
        return timer

    factory.created = created
    return factory
