# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from agent_inbox.core.state import AppState
from agent_inbox.tasks.task_lifecycle import LifecycleEngine
from agent_inbox.tasks.task_store import TaskStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="agent-inbox",
        data_dir=tmp_path,
        db_path=tmp_path / "tasks.sqlite3",
        busy_timeout_seconds=5.0,
        retention_seconds=3600,
        cleanup_interval_seconds=300.0,
        monitor_interval_seconds=0.01,
        monitor_detectors=["input", "stall"],
        input_min_age_seconds=10.0,
        input_idle_seconds=5.0,
        stall_timeout_seconds=600.0,
        stall_min_age_seconds=30.0,
        watch_interval_seconds=1.0,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    """Real SQLite store: its correctness is part of what we want to test."""
    return TaskStore(settings.db_path, busy_timeout=settings.busy_timeout_seconds)


@pytest.fixture()
def engine(store: TaskStore) -> LifecycleEngine:
    return LifecycleEngine(store)


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, engine: LifecycleEngine) -> AppState:
    return AppState(settings=settings, task_store=store, engine=engine)
