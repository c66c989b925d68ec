# src/agent_inbox/tasks/task_api.py

"""
High-level helpers used by the CLI (producers and queries).

Report helpers implement the duplicate-report contract: a producer may retry a
report after a crash or restart, so
- start on an existing task_id returns the existing task (TaskConflict absorbed),
- complete / failed / needs-attention on a finished task return the finished
  task unchanged (InvalidTransition absorbed).
Every other error propagates to the caller as-is.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from ..core.state import AppState
from .task_errors import InvalidTransition, TaskConflict
from .task_models import ACTIVE_STATUSES, Task, TaskStatus
from .task_retention import sweep

logger = logging.getLogger(__name__)


def _default_title(title: str | None, cwd: str | None, agent_type: str) -> str:
    title = (title or "").strip()
    if title:
        return title
    if cwd:
        name = os.path.basename(os.path.normpath(cwd))
        if name:
            return name
    return agent_type


def _absorb_terminal_duplicate(state: AppState, exc: InvalidTransition) -> Task:
    if not exc.is_terminal_duplicate:
        raise exc
    logger.info("Ignoring duplicate report for finished task %s (%s)", exc.task_id, exc.current)
    return state.engine.get(exc.task_id)


def report_start(
    state: AppState,
    task_id: str,
    agent_type: str,
    *,
    cwd: str | None = None,
    title: str | None = None,
    pid: int | None = None,
    ppid: int | None = None,
    url: str | None = None,
    session_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Task:
    context = {
        k: v
        for k, v in (("project_path", cwd), ("url", url), ("session_id", session_id))
        if v
    }

    try:
        return state.engine.start(
            task_id,
            agent_type,
            _default_title(title, cwd, agent_type),
            pid=pid,
            ppid=ppid,
            context=context or None,
            metadata=metadata or None,
        )
    except TaskConflict:
        logger.info("Task %s re-announced; keeping the existing row", task_id)
        return state.engine.get(task_id)


def report_needs_attention(state: AppState, task_id: str, reason: str) -> Task:
    try:
        return state.engine.needs_attention(task_id, reason)
    except InvalidTransition as e:
        return _absorb_terminal_duplicate(state, e)


def report_resume(state: AppState, task_id: str) -> Task:
    return state.engine.resume(task_id)


def report_complete(state: AppState, task_id: str, exit_code: int | None = None) -> Task:
    try:
        return state.engine.complete(task_id, exit_code)
    except InvalidTransition as e:
        return _absorb_terminal_duplicate(state, e)


def report_failed(state: AppState, task_id: str, exit_code: int | None = None) -> Task:
    try:
        return state.engine.fail(task_id, exit_code)
    except InvalidTransition as e:
        return _absorb_terminal_duplicate(state, e)


def list_tasks(
    state: AppState,
    *,
    status: TaskStatus | None = None,
    show_all: bool = False,
    agent_type: str | None = None,
) -> list[Task]:
    """
    Inbox listing. Without a status filter, only active tasks are shown unless
    show_all is set.
    """
    if status is not None:
        statuses: Any = status
    elif show_all:
        statuses = None
    else:
        statuses = ACTIVE_STATUSES
    return state.engine.list_tasks(status=statuses, agent_type=agent_type)


def show_task(state: AppState, task_id: str) -> Task:
    return state.engine.get(task_id)


def clear_task(state: AppState, task_id: str) -> None:
    state.engine.clear(task_id)


def clear_all(state: AppState) -> int:
    return state.engine.clear_all()


def cleanup(state: AppState, retention_seconds: float | None = None) -> int:
    if retention_seconds is None:
        retention_seconds = state.settings.retention_seconds
    return sweep(state.task_store, retention_seconds)
