# src/agent_inbox/tasks/task_retention.py

"""
Retention sweeper.

Deletes finished tasks (completed / failed) whose completed_at is older than
the retention window. Running and needs_attention rows are never touched,
however old they are.
"""

from __future__ import annotations

import asyncio
import logging
import time

from ..core.ports import TaskRepo
from .task_errors import StorageUnavailable
from .task_models import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 3600


def sweep(
    task_store: TaskRepo,
    retention_seconds: float = DEFAULT_RETENTION_SECONDS,
    *,
    now_ts: float | None = None,
) -> int:
    """
    One atomic pass: delete terminal rows with now - completed_at > retention_seconds.

    Returns the number of rows removed.
    """
    if retention_seconds < 0:
        raise ValueError("retention_seconds must be >= 0")

    now = time.time() if now_ts is None else float(now_ts)
    cutoff = now - float(retention_seconds)
    removed = task_store.delete_where(TERMINAL_STATUSES, completed_before=cutoff)
    if removed:
        logger.info("Retention sweep removed %d task(s) older than %ss", removed, retention_seconds)
    else:
        logger.debug("Retention sweep: nothing to remove")
    return removed


async def run_retention_sweeper(
        task_store: TaskRepo,
        *,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        interval_seconds: float = 300.0,
) -> None:
    """
    Periodic sweep. A locked or unreadable store is logged and retried on the
    next pass.

    To stop the sweeper, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        try:
            sweep(task_store, retention_seconds)
        except StorageUnavailable as e:
            logger.warning("Retention sweep skipped: %s", e)

        await asyncio.sleep(sleep_s)
