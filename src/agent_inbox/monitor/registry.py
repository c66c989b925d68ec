# src/agent_inbox/monitor/registry.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..tasks.task_models import Task
from .probe import ProcessSnapshot


@dataclass(slots=True)
class WatchState:
    task_id: str
    pid: int
    last_activity_at: float
    last_cpu_time: float | None = None
    # CPU time moved between the last two probes
    cpu_changed: bool = False

    def idle_seconds(self, now_ts: float) -> float:
        return max(0.0, now_ts - self.last_activity_at)


class MonitorRegistry:
    """
    Tasks watched by one monitor process, keyed by task_id.

    Owned by the monitor: built at startup and passed to every poll cycle.
    """

    def __init__(self) -> None:
        self._watches: dict[str, WatchState] = {}

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._watches

    def __len__(self) -> int:
        return len(self._watches)

    def task_ids(self) -> list[str]:
        return list(self._watches)

    def watch(self, task: Task, now_ts: float) -> WatchState:
        state = WatchState(
            task_id=task.task_id,
            pid=int(task.pid or 0),
            last_activity_at=now_ts,
        )
        self._watches[task.task_id] = state
        return state

    def observe(self, task_id: str, snapshot: ProcessSnapshot, now_ts: float) -> WatchState:
        """Fold a fresh probe into the watch state."""
        state = self._watches[task_id]
        cpu = snapshot.cpu_time
        state.cpu_changed = (
            cpu is not None and state.last_cpu_time is not None and cpu != state.last_cpu_time
        )
        if state.cpu_changed:
            state.last_activity_at = now_ts
        if cpu is not None:
            state.last_cpu_time = cpu
        return state

    def forget(self, task_id: str) -> None:
        self._watches.pop(task_id, None)

    def prune(self, keep: Iterable[str]) -> list[str]:
        """Drop watches for tasks no longer active; return the dropped ids."""
        keep_set = set(keep)
        gone = [tid for tid in self._watches if tid not in keep_set]
        for tid in gone:
            del self._watches[tid]
        return gone
