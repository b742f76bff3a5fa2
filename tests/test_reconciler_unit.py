import pytest

from application.errors import RemoteAuthError, RemoteStoreError, StatusConfigurationError
from application.identity_index import IdentityIndex
from application.reconciler import ItemSyncState, TodoReconciler
from application.retry_queue import RetryQueue
from application.sync_settings import RetryPolicy, SyncSettings
from conftest import FakeTaskStore
from core import TodoStatus


def _reconciler(store, timers, **settings):
    settings.setdefault("tasks_list_id", "L1")
    rec = TodoReconciler(store, SyncSettings(**settings))
    rec.retry_queue = RetryQueue(rec.redrive, rec.settings.retry, timer_factory=timers)
    return rec


def _item(item_id, content, status="pending", parent=None):
    data = {"id": item_id, "content": content, "status": status}
    if parent:
        data["parent"] = parent
    return data


def test_parent_starts_once_when_child_in_progress(store, timers):
    rec = _reconciler(store, timers)
    batch = [_item("p1", "Parent"), _item("c1", "Child", "in_progress", parent="p1")]

    report = rec.sync_batch(batch)

    parent_id = rec.identity.lookup("p1")
    child_id = rec.identity.lookup("c1")
    assert report.created == ["p1", "c1"]
    assert store.tasks[child_id].parent == parent_id
    assert store.status_updates == [(parent_id, "in progress")]
    assert store.tasks[parent_id].status == "in progress"


def test_resubmitting_same_batch_writes_nothing(store, timers):
    rec = _reconciler(store, timers)
    batch = [_item("p1", "Parent"), _item("c1", "Child", "in_progress", parent="p1")]
    rec.sync_batch(batch)
    writes_before = len(store.writes)

    report = rec.sync_batch([dict(entry) for entry in batch])

    assert len(store.writes) == writes_before
    assert report.writes == 0
    assert sorted(report.unchanged) == ["c1", "p1"]


def test_gate_blocks_all_writes(timers):
    store = FakeTaskStore(statuses=("to do", "in progress"))
    rec = _reconciler(store, timers)

    with pytest.raises(StatusConfigurationError) as excinfo:
        rec.sync_batch([_item("a", "Write docs")])

    assert excinfo.value.missing == ["completed"]
    assert "L1" in str(excinfo.value)
    assert store.writes == []
    assert rec.get_sync_status()["queue_size"] == 0


def test_gate_is_rechecked_until_it_passes(timers):
    store = FakeTaskStore(statuses=("to do", "in progress"))
    rec = _reconciler(store, timers)
    with pytest.raises(StatusConfigurationError):
        rec.sync_batch([_item("a", "Write docs")])

    store.default_statuses.append("Completed")
    rec.sync_batch([_item("a", "Write docs")])
    rec.sync_batch([_item("b", "Write more docs")])

    assert len(store.creates) == 2
    assert len([call for call in store.calls if call[0] == "statuses"]) == 2


@pytest.mark.parametrize("order", [("c1", "c2"), ("c2", "c1")])
def test_parent_completes_regardless_of_child_order(store, timers, order):
    rec = _reconciler(store, timers)
    rec.sync_batch(
        [
            _item("p1", "Parent"),
            _item("c1", "First child", parent="p1"),
            _item("c2", "Second child", parent="p1"),
        ]
    )
    parent_id = rec.identity.lookup("p1")
    names = {"c1": "First child", "c2": "Second child"}

    rec.sync_batch([_item(order[0], names[order[0]], "completed", parent="p1")])
    assert store.tasks[parent_id].status == "to do"

    rec.sync_batch([_item(order[1], names[order[1]], "completed", parent="p1")])
    assert store.tasks[parent_id].status == "completed"


def test_completion_read_bypasses_cache(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("p1", "Parent"), _item("c1", "Child", parent="p1")])

    rec.sync_batch([_item("c1", "Child", "completed", parent="p1")])

    forced = [args for op, args in store.calls if op == "list" and args[2]]
    assert forced == [("L1", True, True)]


def test_completed_parent_never_regresses(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("p1", "Parent"), _item("c1", "Child", parent="p1")])
    rec.sync_batch([_item("c1", "Child", "completed", parent="p1")])
    parent_id = rec.identity.lookup("p1")
    assert store.tasks[parent_id].status == "completed"

    rec.sync_batch(
        [
            _item("p1", "Parent"),
            _item("c2", "Late child", parent="p1"),
            _item("c3", "Busy child", "in_progress", parent="p1"),
        ]
    )

    assert store.tasks[parent_id].status == "completed"
    assert (parent_id, "to do") not in store.status_updates


def test_partial_completion_moves_parent_to_in_progress(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch(
        [
            _item("p1", "Parent"),
            _item("c1", "First child", parent="p1"),
            _item("c2", "Second child", parent="p1"),
        ]
    )
    parent_id = rec.identity.lookup("p1")
    store.tasks[rec.identity.lookup("c2")].status = "in progress"

    rec.sync_batch([_item("c1", "First child", "completed", parent="p1")])

    assert store.tasks[parent_id].status == "in progress"


def test_second_sync_updates_instead_of_creating(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "Implement parser")])
    rec.sync_batch([_item("a", "Implement parser", "in_progress")])

    assert len(store.creates) == 1
    remote_id = rec.identity.lookup("a")
    assert store.tasks[remote_id].status == "in progress"
    assert rec.state_of("a") is ItemSyncState.UPDATED


def test_completed_item_without_remote_is_not_created(store, timers):
    rec = _reconciler(store, timers)

    report = rec.sync_batch([_item("done", "Old work", "completed")])

    assert store.creates == []
    assert report.skipped == ["done"]
    assert rec.state_of("done") is ItemSyncState.SKIPPED


def test_queued_versions_coalesce_into_one_write(store, timers):
    rec = _reconciler(store, timers)
    rec.enqueue([_item("a", "Implement parser", "pending")])
    rec.enqueue([_item("a", "Implement parser", "in_progress")])

    rec.process_queue()

    assert len(store.writes) == 1
    assert store.creates[0][1]["status"] == "in progress"


def test_newer_version_supersedes_pending_retry(store, timers):
    rec = _reconciler(store, timers)
    store.fail_once("create", RemoteStoreError("boom"))
    rec.sync_batch([_item("a", "Implement parser", "pending")])
    assert rec.retry_queue.pending() == 1

    rec.sync_batch([_item("a", "Implement parser", "in_progress")])
    rec.force_sync()

    assert rec.retry_queue.pending() == 0
    successful = [task for task in store.tasks.values() if task.name == "Implement parser"]
    assert len(successful) == 1
    assert successful[0].status == "in progress"


def test_failed_item_is_retried_later(store, timers):
    rec = _reconciler(store, timers)
    store.fail_once("create", RemoteStoreError("boom"))

    report = rec.sync_batch([_item("a", "Implement parser"), _item("b", "Write docs")])

    assert report.failed == ["a"]
    assert report.created == ["b"]
    assert rec.state_of("a") is ItemSyncState.FAILED
    assert timers.created[0].interval == 5.0
    assert rec.get_sync_status()["failed"] == ["a"]

    rec.force_sync()

    assert rec.state_of("a") is ItemSyncState.SYNCHRONIZED
    assert rec.identity.lookup("a") is not None
    assert rec.retry_queue.attempts("a") == 0


def test_unreadable_snapshot_requeues_whole_batch(store, timers):
    rec = _reconciler(store, timers)
    store.fail_once("list", RemoteStoreError("timeout"))

    report = rec.sync_batch([_item("a", "Implement parser"), _item("b", "Write docs")])

    assert report.failed == ["a", "b"]
    assert store.writes == []
    assert rec.retry_queue.pending() == 2


def test_retries_stop_after_max_attempts(store, timers):
    rec = _reconciler(store, timers, retry=RetryPolicy(max_attempts=1))
    store.fail_on["create"] = RemoteStoreError("down")

    rec.sync_batch([_item("a", "Implement parser")])
    rec.force_sync()

    assert rec.retry_queue.pending() == 0
    assert rec.get_sync_status()["dead_letters"] == ["a"]


def test_deleted_remote_task_is_recreated(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "Implement parser")])
    old_id = rec.identity.lookup("a")
    store.remove(old_id)

    rec.sync_batch([_item("a", "Implement parser", "in_progress")])

    new_id = rec.identity.lookup("a")
    assert new_id != old_id
    assert store.tasks[new_id].status == "in progress"
    assert rec.identity.reverse_lookup(old_id) is None


def test_existing_remote_task_is_adopted_by_name(store, timers):
    store.seed("ext1", "Write docs", status="to do")
    rec = _reconciler(store, timers)

    report = rec.sync_batch([_item("d1", "Write docs", "in_progress")])

    assert store.creates == []
    assert report.updated == ["d1"]
    assert rec.identity.lookup("d1") == "ext1"
    assert store.tasks["ext1"].status == "in progress"


def test_name_match_skips_task_owned_by_another_item(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "Write docs")])

    rec.sync_batch([_item("b", "Write docs")])

    assert len(store.creates) == 2
    assert rec.identity.lookup("a") != rec.identity.lookup("b")


def test_remote_progress_is_kept_on_first_sight(store, timers):
    store.seed("ext1", "Ship release", status="completed", status_type="closed")
    rec = _reconciler(store, timers)

    report = rec.sync_batch([_item("r1", "Ship release", "pending")])

    assert store.writes == []
    assert report.unchanged == ["r1"]


def test_local_reopen_is_pushed(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "Implement parser", "in_progress")])

    rec.sync_batch([_item("a", "Implement parser", "pending")])

    assert store.tasks[rec.identity.lookup("a")].status == "to do"


def test_create_payload_carries_metadata(store, timers):
    rec = _reconciler(store, timers, auto_assign=True, assignee_id=77)

    rec.sync_batch([_item("a", "Urgent: fix broken api endpoint")])

    _, fields = store.creates[0]
    assert fields["name"] == "Urgent: fix broken api endpoint"
    assert fields["status"] == "to do"
    assert fields["priority"] == 1
    assert "api" in fields["tags"]
    assert fields["assignees"] == [77]
    assert fields["time_estimate"] > 0
    assert "Todo ID: a" in fields["description"]


def test_overlapping_batch_is_queued_not_run_concurrently(store, timers):
    rec = _reconciler(store, timers)
    seen_in_flight = []

    def reenter(task):
        if task.name == "First":
            seen_in_flight.append(rec.get_sync_status()["in_progress"])
            report = rec.sync_batch([_item("b", "Second")])
            assert report.writes == 0

    store.on_create = reenter
    report = rec.sync_batch([_item("a", "First")])

    assert seen_in_flight == [True]
    assert report.created == ["a", "b"]
    assert rec.get_sync_status()["queue_size"] == 0


def test_disabled_sync_is_a_no_op(store, timers):
    rec = _reconciler(store, timers, todo_sync_enabled=False)

    report = rec.sync_batch([_item("a", "Implement parser")])

    assert store.calls == []
    assert report.writes == 0


def test_identity_can_be_shared_with_caller(store, timers):
    identity = IdentityIndex("L1")
    rec = TodoReconciler(store, SyncSettings(tasks_list_id="L1"), identity=identity)
    rec.retry_queue = RetryQueue(rec.redrive, timer_factory=timers)

    rec.sync_batch([_item("a", "Implement parser")])

    assert identity.lookup("a") in store.tasks


def test_missing_list_id_is_rejected(store):
    with pytest.raises(ValueError):
        TodoReconciler(store, SyncSettings())


def test_sync_status_shape(store, timers):
    rec = _reconciler(store, timers)
    status = rec.get_sync_status()

    assert status["queue_size"] == 0
    assert status["in_progress"] is False
    assert status["list_id"] == "L1"
    assert status["retry_pending"] == 0


def test_gate_auth_error_reaches_caller_without_writes(store, timers):
    rec = _reconciler(store, timers)
    store.fail_once("statuses", RemoteAuthError("token rejected"))

    with pytest.raises(RemoteAuthError):
        rec.sync_batch([_item("a", "Write docs")])

    assert store.writes == []
    assert rec.get_sync_status()["queue_size"] == 0
    assert rec.retry_queue.pending() == 0


def test_failing_propagation_counts_toward_max_attempts(store, timers):
    rec = _reconciler(store, timers, retry=RetryPolicy(max_attempts=3))
    rec.sync_batch([_item("p1", "Parent"), _item("c1", "Child", parent="p1")])
    child_id = rec.identity.lookup("c1")
    store.fail_on["forced_list"] = RemoteStoreError("timeout")

    report = rec.sync_batch([_item("c1", "Child", "completed", parent="p1")])

    assert report.updated == ["c1"]
    assert report.failed == ["c1"]
    assert store.tasks[child_id].status == "completed"

    for _ in range(5):
        rec.force_sync()

    assert rec.retry_queue.pending() == 0
    assert rec.get_sync_status()["dead_letters"] == ["c1"]


def test_vanished_task_is_recreated_when_snapshot_is_stale(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "Implement parser")])
    old_id = rec.identity.lookup("a")
    store.freeze()
    store.remove(old_id)

    report = rec.sync_batch([_item("a", "Implement parser", "in_progress")])

    new_id = rec.identity.lookup("a")
    assert report.failed == []
    assert report.created == ["a"]
    assert new_id != old_id
    assert store.tasks[new_id].status == "in progress"
    assert rec.identity.reverse_lookup(old_id) is None
    assert rec.retry_queue.pending() == 0


def test_vanished_parent_is_unlinked_without_failing_child(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("p1", "Parent"), _item("c1", "Child", parent="p1")])
    store.freeze()
    store.remove(rec.identity.lookup("p1"))

    report = rec.sync_batch([_item("c1", "Child", "in_progress", parent="p1")])

    assert report.updated == ["c1"]
    assert report.failed == []
    assert report.propagated == []
    assert rec.identity.lookup("p1") is None


def test_remote_task_is_matched_by_todo_id_field(store, timers):
    store.seed("ext1", "Renamed upstream").custom_fields["todo_id"] = "a"
    rec = _reconciler(store, timers)

    report = rec.sync_batch([_item("a", "Implement parser", "in_progress")])

    assert store.creates == []
    assert report.updated == ["a"]
    assert rec.identity.lookup("a") == "ext1"
    assert store.tasks["ext1"].status == "in progress"


def test_every_item_is_enriched(store, timers):
    seen = []

    def analyzer(item):
        seen.append(item.id)
        return item

    rec = TodoReconciler(store, SyncSettings(tasks_list_id="L1"), analyzer=analyzer)
    rec.retry_queue = RetryQueue(rec.redrive, timer_factory=timers)

    rec.sync_batch([_item("a", "One")])
    rec.sync_batch([_item("a", "One", "in_progress"), _item("b", "Two", "completed")])

    assert seen == ["a", "a", "b"]


def test_reentrant_call_keeps_last_report(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "First")])
    previous = rec.last_report
    seen = []

    def reenter(task):
        if task.name == "Second":
            rec.sync_batch([_item("c", "Third")])
            seen.append(rec.last_report)

    store.on_create = reenter
    report = rec.sync_batch([_item("b", "Second")])

    assert seen == [previous]
    assert rec.last_report is report
    assert report.created == ["b", "c"]


def test_pull_item_maps_remote_task_back(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("p1", "Parent"), _item("c1", "Child", parent="p1")])
    child_id = rec.identity.lookup("c1")
    store.tasks[child_id].status = "in progress"

    item = rec.pull_item(child_id)

    assert item.id == "c1"
    assert item.content == "Child"
    assert item.status is TodoStatus.IN_PROGRESS
    assert item.parent_id == "p1"
    assert item.remote_task_id == child_id


def test_pull_item_of_unmapped_tasks(store, timers):
    store.seed("ext1", "Ship release", status="Shipped", status_type="closed").custom_fields["todo_id"] = "r1"
    store.seed("ext2", "Loose task")
    rec = _reconciler(store, timers)

    shipped = rec.pull_item("ext1")
    loose = rec.pull_item("ext2")

    assert shipped.id == "r1"
    assert shipped.status is TodoStatus.COMPLETED
    assert rec.identity.lookup("r1") == "ext1"
    assert loose.id == "ext2"
    assert loose.status is TodoStatus.PENDING


def test_pull_item_of_deleted_task_drops_mapping(store, timers):
    rec = _reconciler(store, timers)
    rec.sync_batch([_item("a", "Implement parser")])
    remote_id = rec.identity.lookup("a")
    store.remove(remote_id)

    assert rec.pull_item(remote_id) is None
    assert rec.identity.lookup("a") is None
