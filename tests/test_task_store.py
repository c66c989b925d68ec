# tests/test_task_store.py

from __future__ import annotations

import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from agent_inbox.tasks.task_errors import StorageUnavailable, TaskConflict, TaskNotFound
from agent_inbox.tasks.task_models import TERMINAL_STATUSES, TaskStatus
from agent_inbox.tasks.task_store import TaskStore


def test_create_get_list_delete(store: TaskStore) -> None:
    task = store.create(
        "t1",
        "claude_code",
        "Refactor parser",
        pid=123,
        ppid=1,
        context={"project_path": "/src/app"},
        metadata={"model": "x"},
    )
    assert task.status == TaskStatus.RUNNING
    assert task.created_at == task.updated_at
    assert task.completed_at is None

    got = store.get("t1")
    assert got == task
    assert got.context == {"project_path": "/src/app"}
    assert got.metadata == {"model": "x"}

    assert [t.task_id for t in store.list()] == ["t1"]

    store.delete("t1")
    with pytest.raises(TaskNotFound):
        store.get("t1")

    # idempotent
    store.delete("t1")
    store.delete("never-existed")


def test_title_is_truncated(store: TaskStore) -> None:
    task = store.create("t1", "opencode", "x" * 250)
    assert len(task.title) == 100
    assert store.get("t1").title == "x" * 100

    # Only the ends are trimmed; the text itself is kept as given.
    task = store.create("t2", "opencode", "  fix  the\tparser  ")
    assert task.title == "fix  the\tparser"
    assert store.get("t2").title == "fix  the\tparser"


def test_create_requires_ids(store: TaskStore) -> None:
    with pytest.raises(ValueError):
        store.create("", "claude_code", "t")
    with pytest.raises(ValueError):
        store.create("t1", "  ", "t")
    assert store.count() == 0


def test_duplicate_create_conflicts_and_keeps_original(store: TaskStore) -> None:
    store.create("t1", "claude_code", "first")
    with pytest.raises(TaskConflict):
        store.create("t1", "gemini_web", "second")

    assert store.count() == 1
    assert store.get("t1").title == "first"


def test_concurrent_creates_exactly_one_wins(settings) -> None:
    # Separate TaskStore objects, like separate producer processes.
    def attempt(i: int) -> str:
        s = TaskStore(settings.db_path, busy_timeout=10.0)
        try:
            s.create("same-id", "claude_code", f"attempt {i}")
            return "ok"
        except TaskConflict:
            return "conflict"

    TaskStore(settings.db_path)  # schema first
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(16)))

    assert results.count("ok") == 1
    assert results.count("conflict") == 15
    assert TaskStore(settings.db_path).count() == 1


def test_concurrent_updates_serialize(store: TaskStore, settings) -> None:
    store.create("t1", "claude_code", "busy")
    barrier = threading.Barrier(6)

    def flag(i: int) -> float:
        s = TaskStore(settings.db_path, busy_timeout=10.0)
        barrier.wait()
        return s.update_status("t1", TaskStatus.NEEDS_ATTENTION, attention_reason=f"r{i}").updated_at

    with ThreadPoolExecutor(max_workers=6) as pool:
        stamps = list(pool.map(flag, range(6)))

    final = store.get("t1")
    assert final.status == TaskStatus.NEEDS_ATTENTION
    assert final.attention_reason in {f"r{i}" for i in range(6)}
    # The last committed write is what we read back.
    assert final.updated_at == max(stamps)


def test_updated_at_never_goes_backwards(store: TaskStore) -> None:
    now = time.time()
    store.create("t1", "claude_code", "t", now_ts=now)
    task = store.update_status(
        "t1", TaskStatus.NEEDS_ATTENTION, attention_reason="x", now_ts=now - 100
    )
    assert task.updated_at >= task.created_at
    assert task.updated_at == now


def test_update_unknown_task(store: TaskStore) -> None:
    with pytest.raises(TaskNotFound):
        store.update_status("nope", TaskStatus.COMPLETED)


def test_list_filters_and_order(store: TaskStore) -> None:
    now = time.time()
    store.create("b", "claude_code", "second", now_ts=now + 1)
    store.create("a", "gemini_web", "first", now_ts=now)
    store.create("c", "claude_code", "third", now_ts=now + 2)
    store.update_status("c", TaskStatus.COMPLETED, exit_code=0, now_ts=now + 3)

    assert [t.task_id for t in store.list()] == ["a", "b", "c"]
    assert [t.task_id for t in store.list(status=TaskStatus.RUNNING)] == ["a", "b"]
    assert [t.task_id for t in store.list(status=TERMINAL_STATUSES)] == ["c"]
    assert [t.task_id for t in store.list(agent_type="claude_code")] == ["b", "c"]
    assert [t.task_id for t in store.list(limit=1)] == ["a"]
    assert store.list(status=[]) == []


def test_list_running_never_shows_finished_task(store: TaskStore) -> None:
    store.create("t1", "claude_code", "t")
    store.update_status("t1", TaskStatus.FAILED, exit_code=1)
    assert store.list(status=TaskStatus.RUNNING) == []


def test_delete_where_respects_status_and_age(store: TaskStore) -> None:
    now = time.time()
    store.create("old-done", "x", "t", now_ts=now - 500)
    store.update_status("old-done", TaskStatus.COMPLETED, now_ts=now - 400)
    store.create("new-done", "x", "t", now_ts=now - 10)
    store.update_status("new-done", TaskStatus.COMPLETED, now_ts=now - 5)
    store.create("old-running", "x", "t", now_ts=now - 500)

    removed = store.delete_where(TERMINAL_STATUSES, completed_before=now - 100)
    assert removed == 1
    assert {t.task_id for t in store.list()} == {"new-done", "old-running"}

    assert store.delete_where([]) == 0


def test_set_monitor_pid_claim(store: TaskStore) -> None:
    store.create("t1", "claude_code", "t", pid=42)

    assert store.set_monitor_pid("t1", 1000) is True
    assert store.get("t1").monitor_pid == 1000
    # Someone else cannot take it while it is owned...
    assert store.set_monitor_pid("t1", 2000) is False
    # ...unless they name the owner they are replacing.
    assert store.set_monitor_pid("t1", 2000, expected=1000) is True
    assert store.get("t1").monitor_pid == 2000

    store.update_status("t1", TaskStatus.COMPLETED)
    assert store.set_monitor_pid("t1", 2000) is False


def test_set_monitor_pid_records_owner_start_time(store: TaskStore) -> None:
    store.create("t1", "claude_code", "t", pid=42)

    assert store.set_monitor_pid("t1", 1000, started_at=1234.5)
    assert store.get("t1").monitor_started_at == 1234.5

    # Releasing clears both halves of the claim.
    assert store.set_monitor_pid("t1", None, started_at=99.0, expected=1000)
    task = store.get("t1")
    assert task.monitor_pid is None
    assert task.monitor_started_at is None


def test_status_check_constraint_rejects_unknown_values(store: TaskStore) -> None:
    conn = sqlite3.connect(str(store.db_path))
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO tasks(task_id, agent_type, title, status, created_at, updated_at) "
                "VALUES ('bad', 'x', 't', 'paused', 0, 0)"
            )
    finally:
        conn.close()


def test_schema_is_reusable_across_instances(tmp_path: Path) -> None:
    db = tmp_path / "nested" / "tasks.sqlite3"
    TaskStore(db).create("t1", "claude_code", "t")
    assert TaskStore(db).get("t1").task_id == "t1"


def test_old_schema_is_migrated(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    conn = sqlite3.connect(str(db))
    try:
        conn.execute(
            "CREATE TABLE tasks ("
            " id INTEGER PRIMARY KEY AUTOINCREMENT, task_id TEXT NOT NULL UNIQUE,"
            " agent_type TEXT NOT NULL, title TEXT NOT NULL DEFAULT '',"
            " status TEXT NOT NULL DEFAULT 'running', created_at REAL NOT NULL, updated_at REAL NOT NULL)"
        )
        conn.execute(
            "INSERT INTO tasks(task_id, agent_type, title, status, created_at, updated_at) "
            "VALUES ('old', 'claude_code', 't', 'running', 1, 1)"
        )
        conn.commit()
    finally:
        conn.close()

    store = TaskStore(db)

    task = store.get("old")
    assert task.pid is None
    assert task.monitor_started_at is None
    assert store.set_monitor_pid("old", 5, started_at=2.0)
    assert store.update_status("old", TaskStatus.COMPLETED, exit_code=0).completed_at is not None


def test_opening_current_schema_needs_no_write_lock(store: TaskStore, settings) -> None:
    store.create("t1", "claude_code", "t")
    blocker = sqlite3.connect(str(settings.db_path), isolation_level=None)
    try:
        blocker.execute("BEGIN IMMEDIATE")
        # A reader process starting while a writer holds the lock.
        reader = TaskStore(settings.db_path, busy_timeout=0.1)
        assert [t.task_id for t in reader.list()] == ["t1"]
        assert reader.get("t1").status == TaskStatus.RUNNING
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()


def test_corrupt_database_is_storage_unavailable(tmp_path: Path) -> None:
    db = tmp_path / "tasks.sqlite3"
    db.write_bytes(b"this is not a sqlite database" * 100)
    with pytest.raises(StorageUnavailable):
        TaskStore(db)


def test_locked_database_fails_fast(store: TaskStore, settings) -> None:
    store.create("t1", "claude_code", "t")
    impatient = TaskStore(settings.db_path, busy_timeout=0.1)
    blocker = sqlite3.connect(str(settings.db_path), isolation_level=None)
    try:
        blocker.execute("BEGIN IMMEDIATE")
        with pytest.raises(StorageUnavailable):
            impatient.update_status("t1", TaskStatus.COMPLETED)
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()

    assert store.get("t1").status == TaskStatus.RUNNING
