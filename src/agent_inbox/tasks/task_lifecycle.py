# src/agent_inbox/tasks/task_lifecycle.py

"""
Lifecycle engine: the single authority over task status.

Transition table:

    (none)                   start            -> running
    running                  needs_attention  -> needs_attention
    needs_attention          needs_attention  -> needs_attention   (refresh reason)
    needs_attention          resume           -> running
    running/needs_attention  complete         -> completed
    running/needs_attention  fail             -> failed
    completed/failed         anything         -> InvalidTransition

The pure rules (check_transition / plan_transition) run inside the store's write
transaction, so the status read and the update are one atomic unit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..core.ports import TaskRepo
from .task_errors import InvalidTransition
from .task_models import TERMINAL_STATUSES, Task, TaskStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.RUNNING: frozenset(
        {TaskStatus.NEEDS_ATTENTION, TaskStatus.COMPLETED, TaskStatus.FAILED}
    ),
    TaskStatus.NEEDS_ATTENTION: frozenset(
        {TaskStatus.NEEDS_ATTENTION, TaskStatus.RUNNING, TaskStatus.COMPLETED, TaskStatus.FAILED}
    ),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

PROCESS_EXITED_REASON = "Process exited without reporting completion"


def check_transition(task_id: str, current: TaskStatus, new_status: TaskStatus) -> None:
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(task_id, current, new_status)


def plan_transition(
    task: Task,
    new_status: TaskStatus,
    *,
    attention_reason: str | None = None,
    exit_code: int | None = None,
    failure_reason: str | None = None,
    now_ts: float,
) -> dict[str, Any]:
    """
    Validate a transition and return the column changes it implies.

    updated_at never moves backwards: it is at least the previous updated_at,
    so it follows commit order even when the caller's clock lags.
    """
    check_transition(task.task_id, task.status, new_status)

    updated_at = max(float(now_ts), task.updated_at, task.created_at)
    changes: dict[str, Any] = {"status": new_status.value, "updated_at": updated_at}

    if new_status == TaskStatus.NEEDS_ATTENTION:
        reason = (attention_reason or "").strip()
        if not reason:
            raise ValueError("attention_reason is required for needs_attention")
        changes["attention_reason"] = reason

    elif new_status == TaskStatus.RUNNING:
        changes["attention_reason"] = None

    elif new_status in TERMINAL_STATUSES:
        changes["attention_reason"] = None
        changes["completed_at"] = updated_at
        changes["exit_code"] = int(exit_code) if exit_code is not None else None
        if new_status == TaskStatus.FAILED:
            changes["failure_reason"] = (failure_reason or "").strip() or None

    return changes


class LifecycleEngine:
    """
    Entry points used by producers, the CLI and the attention monitor.

    Duplicate reports are part of the contract: producers may retry after a
    crash, so TaskConflict on start and InvalidTransition on a terminal task are
    raised as ordinary, recoverable results (see task_api for the tolerant helpers).
    """

    def __init__(self, store: TaskRepo) -> None:
        self._store = store

    @property
    def store(self) -> TaskRepo:
        return self._store

    # ---- transitions ----

    def start(
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
    ) -> Task:
        task = self._store.create(
            task_id,
            agent_type,
            title,
            pid=pid,
            ppid=ppid,
            context=context,
            metadata=metadata,
            now_ts=now_ts,
        )
        logger.info("Task %s started agent=%s pid=%s", task.task_id, task.agent_type, task.pid)
        return task

    def needs_attention(self, task_id: str, reason: str, *, now_ts: float | None = None) -> Task:
        task = self._store.update_status(
            task_id, TaskStatus.NEEDS_ATTENTION, attention_reason=reason, now_ts=now_ts
        )
        logger.info("Task %s -> needs_attention (%s)", task_id, task.attention_reason)
        return task

    def resume(self, task_id: str, *, now_ts: float | None = None) -> Task:
        task = self._store.update_status(task_id, TaskStatus.RUNNING, now_ts=now_ts)
        logger.info("Task %s -> running", task_id)
        return task

    def complete(
        self, task_id: str, exit_code: int | None = None, *, now_ts: float | None = None
    ) -> Task:
        task = self._store.update_status(
            task_id, TaskStatus.COMPLETED, exit_code=exit_code, now_ts=now_ts
        )
        logger.info("Task %s -> completed exit_code=%s", task_id, task.exit_code)
        return task

    def fail(
        self,
        task_id: str,
        exit_code: int | None = None,
        *,
        reason: str | None = None,
        now_ts: float | None = None,
    ) -> Task:
        task = self._store.update_status(
            task_id,
            TaskStatus.FAILED,
            exit_code=exit_code,
            failure_reason=reason,
            now_ts=now_ts,
        )
        logger.info("Task %s -> failed exit_code=%s reason=%s", task_id, task.exit_code, task.failure_reason)
        return task

    def attach_monitor(
        self,
        task_id: str,
        monitor_pid: int,
        *,
        started_at: float | None = None,
        expected: int | None = None,
    ) -> bool:
        """Record monitor ownership; True if this monitor now owns the task."""
        return self._store.set_monitor_pid(task_id, monitor_pid, started_at=started_at, expected=expected)

    def detach_monitor(self, task_id: str, monitor_pid: int) -> bool:
        return self._store.set_monitor_pid(task_id, None, expected=monitor_pid)

    # ---- queries ----

    def get(self, task_id: str) -> Task:
        return self._store.get(task_id)

    def list_tasks(
        self,
        *,
        status: TaskStatus | Iterable[TaskStatus] | None = None,
        agent_type: str | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        return self._store.list(status=status, agent_type=agent_type, limit=limit)

    # ---- deletion ----

    def clear(self, task_id: str) -> None:
        self._store.delete(task_id)
        logger.info("Task %s cleared", task_id)

    def clear_all(self) -> int:
        """Delete every terminal task regardless of age."""
        n = self._store.delete_where(TERMINAL_STATUSES)
        logger.info("Cleared %d finished task(s)", n)
        return n
