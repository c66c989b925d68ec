# tests/test_task_retention.py

from __future__ import annotations

import asyncio
import time

import pytest

from agent_inbox.tasks.task_errors import StorageUnavailable
from agent_inbox.tasks.task_lifecycle import LifecycleEngine
from agent_inbox.tasks.task_retention import run_retention_sweeper, sweep
from agent_inbox.tasks.task_store import TaskStore


def test_sweep_boundaries(engine: LifecycleEngine, store: TaskStore) -> None:
    now = time.time()
    start = now - 10_000

    engine.start("expired", "claude_code", "t", now_ts=start)
    engine.complete("expired", 0, now_ts=now - 3601)

    engine.start("fresh", "claude_code", "t", now_ts=start)
    engine.complete("fresh", 0, now_ts=now - 3599)

    engine.start("failed-old", "claude_code", "t", now_ts=start)
    engine.fail("failed-old", 1, now_ts=now - 7200)

    engine.start("running-old", "claude_code", "t", now_ts=start)
    engine.start("attention-old", "claude_code", "t", now_ts=start)
    engine.needs_attention("attention-old", "waiting", now_ts=start + 1)

    removed = sweep(store, 3600, now_ts=now)

    assert removed == 2
    assert {t.task_id for t in store.list()} == {"fresh", "running-old", "attention-old"}


def test_sweep_rejects_negative_window(store: TaskStore) -> None:
    with pytest.raises(ValueError):
        sweep(store, -1)


class _FlakyStore:
    """Fails the first pass, then counts calls."""

    def __init__(self) -> None:
        self.calls = 0

    def delete_where(self, statuses, *, completed_before=None) -> int:
        self.calls += 1
        if self.calls == 1:
            raise StorageUnavailable("database is locked")
        return 0


@pytest.mark.asyncio
async def test_periodic_sweeper_survives_storage_errors() -> None:
    flaky = _FlakyStore()
    runner = asyncio.create_task(
        run_retention_sweeper(flaky, retention_seconds=60, interval_seconds=0.01)
    )

    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert flaky.calls >= 2
