# src/agent_inbox/tasks/task_errors.py

"""
Task error taxonomy.

Recoverable results (callers log and continue):
- TaskConflict: start reported twice for the same task_id
- TaskNotFound: unknown task_id
- InvalidTransition: transition not allowed from the current status

Hard failures of a single operation:
- StorageUnavailable: the SQLite file is locked past the busy timeout, unreadable or corrupt

Monitor-only:
- MonitorProbeFailed: a liveness probe was inconclusive; never causes a transition
"""

from __future__ import annotations

from typing import Any


class TaskError(Exception):
    """Base class for agent_inbox task errors."""


class TaskConflict(TaskError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"task {task_id!r} already exists")
        self.task_id = task_id


class TaskNotFound(TaskError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"task {task_id!r} not found")
        self.task_id = task_id


class InvalidTransition(TaskError):
    def __init__(self, task_id: str, current: Any, requested: Any) -> None:
        super().__init__(f"task {task_id!r}: cannot go from {current} to {requested}")
        self.task_id = task_id
        self.current = current
        self.requested = requested

    @property
    def is_terminal_duplicate(self) -> bool:
        """True when the task had already finished (a duplicate completion report)."""
        return str(self.current) in ("completed", "failed")


class StorageUnavailable(TaskError):
    """Raised when the task database cannot be opened, locked, or read."""


class MonitorProbeFailed(TaskError):
    def __init__(self, pid: int, detail: str) -> None:
        super().__init__(f"probe for pid {pid} failed: {detail}")
        self.pid = pid
        self.detail = detail
