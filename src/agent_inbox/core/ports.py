# src/agent_inbox/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The lifecycle engine and the monitor depend on Protocols instead of concrete
implementations. This keeps the SQLite store and the psutil probe swappable and
makes testing easier.
"""

from typing import TYPE_CHECKING, Any, Iterable, Protocol

if TYPE_CHECKING:
    from ..monitor.probe import ProcessSnapshot
    from ..tasks.task_models import Task, TaskStatus


class TaskRepo(Protocol):
    # Creation / transitions
    def create(
            self,
            task_id: str,
            agent_type: str,
            title: str,
            *,
            pid: int | None = None,
            ppid: int | None = None,
            context: dict[str, Any] | None = None,
            metadata: dict[str, Any] | None = None,
            now_ts: float | None = None,
    ) -> Task: ...

    def update_status(
            self,
            task_id: str,
            new_status: TaskStatus,
            *,
            attention_reason: str | None = None,
            exit_code: int | None = None,
            failure_reason: str | None = None,
            now_ts: float | None = None,
    ) -> Task: ...

    def set_monitor_pid(
            self,
            task_id: str,
            monitor_pid: int | None,
            *,
            started_at: float | None = None,
            expected: int | None = None,
            now_ts: float | None = None,
    ) -> bool: ...

    # Queries
    def get(self, task_id: str) -> Task: ...
    def list(
            self,
            *,
            status: TaskStatus | Iterable[TaskStatus] | None = None,
            agent_type: str | None = None,
            limit: int | None = None,
    ) -> list[Task]: ...
    def count(self) -> int: ...

    # Deletion
    def delete(self, task_id: str) -> None: ...
    def delete_where(
            self,
            statuses: Iterable[TaskStatus],
            *,
            completed_before: float | None = None,
    ) -> int: ...


class ProcessProbe(Protocol):
    """Non-blocking, bounded-cost look at one process."""
    def probe(self, pid: int) -> ProcessSnapshot: ...
    def is_alive(self, pid: int) -> bool: ...
