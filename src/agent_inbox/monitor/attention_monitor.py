# src/agent_inbox/monitor/attention_monitor.py

from __future__ import annotations

"""
Attention monitor.

A polling loop that, for every active task with a recorded pid:
- claims the task for this monitor (monitor_pid), unless another live monitor owns it,
- probes the process without blocking,
- fails tasks whose process is gone (a producer that crashed before reporting),
- flags running tasks a detector considers blocked or stalled,
- resumes tasks it flagged itself once the process shows activity again.

All state changes go through the LifecycleEngine. Suspension happens only in
asyncio.sleep between cycles.
"""

import asyncio
import logging
import os
import time
from collections.abc import Sequence
from dataclasses import dataclass

from ..core.ports import ProcessProbe
from ..tasks.task_errors import InvalidTransition, MonitorProbeFailed, StorageUnavailable, TaskNotFound
from ..tasks.task_lifecycle import PROCESS_EXITED_REASON, LifecycleEngine
from ..tasks.task_models import ACTIVE_STATUSES, Task, TaskStatus
from .detectors import MONITOR_REASONS, AttentionDetector
from .probe import ProcessSnapshot
from .registry import MonitorRegistry

logger = logging.getLogger(__name__)

# A process started this long after the task was created is a recycled pid.
PID_REUSE_SLACK_SECONDS = 2.0


@dataclass(slots=True)
class PollReport:
    checked: int = 0
    failed: int = 0
    flagged: int = 0
    resumed: int = 0
    skipped: int = 0
    probe_errors: int = 0


def _own_start_time(probe: ProcessProbe, monitor_pid: int) -> float | None:
    try:
        return probe.probe(monitor_pid).create_time
    except MonitorProbeFailed as e:
        logger.warning("Cannot read own start time: %s", e)
        return None


def _owner_is_live(probe: ProcessProbe, task: Task) -> bool:
    """
    The recorded owner still runs the monitor that claimed the task: its pid
    is alive and the process started when the claim says it did.
    """
    owner = task.monitor_pid
    if owner is None or not probe.is_alive(owner):
        return False
    if task.monitor_started_at is None:
        # Unverifiable claim; the pid may have been recycled.
        return False
    try:
        snapshot = probe.probe(owner)
    except MonitorProbeFailed:
        return True
    if not snapshot.alive or snapshot.create_time is None:
        return snapshot.alive
    return abs(snapshot.create_time - task.monitor_started_at) <= PID_REUSE_SLACK_SECONDS


def _claim(
    engine: LifecycleEngine,
    probe: ProcessProbe,
    task: Task,
    monitor_pid: int,
    started_at: float | None,
) -> bool:
    owner = task.monitor_pid
    expected: int | None = None
    if owner is not None and owner != monitor_pid:
        if _owner_is_live(probe, task):
            return False
        logger.info("Taking over task %s from gone monitor pid=%s", task.task_id, owner)
        expected = owner
    return engine.attach_monitor(task.task_id, monitor_pid, started_at=started_at, expected=expected)


def _process_gone(task: Task, snapshot: ProcessSnapshot) -> bool:
    if not snapshot.alive:
        return True
    return snapshot.create_time is not None and snapshot.create_time > task.created_at + PID_REUSE_SLACK_SECONDS


def poll_once(
    engine: LifecycleEngine,
    registry: MonitorRegistry,
    probe: ProcessProbe,
    *,
    monitor_pid: int | None = None,
    monitor_started_at: float | None = None,
    detectors: Sequence[AttentionDetector] = (),
    now_ts: float | None = None,
) -> PollReport:
    """
    Run one monitor cycle. StorageUnavailable propagates; everything else is
    handled per task.

    monitor_started_at is this monitor's process create_time; it is stored
    with each claim so other monitors can tell us from a recycled pid.
    """
    now = time.time() if now_ts is None else float(now_ts)
    me = os.getpid() if monitor_pid is None else int(monitor_pid)
    report = PollReport()

    tasks = engine.list_tasks(status=ACTIVE_STATUSES)
    active_ids: list[str] = []

    for task in tasks:
        if task.pid is None:
            continue
        active_ids.append(task.task_id)

        if task.task_id not in registry:
            if not _claim(engine, probe, task, me, monitor_started_at):
                report.skipped += 1
                continue
            registry.watch(task, now)

        report.checked += 1
        try:
            snapshot = probe.probe(task.pid)
        except MonitorProbeFailed as e:
            # Inconclusive: judge again on the next successful probe.
            logger.debug("Task %s: %s", task.task_id, e)
            report.probe_errors += 1
            continue

        try:
            if _process_gone(task, snapshot):
                engine.fail(task.task_id, reason=PROCESS_EXITED_REASON, now_ts=now)
                registry.forget(task.task_id)
                report.failed += 1
                continue

            watch = registry.observe(task.task_id, snapshot, now)

            if task.status == TaskStatus.RUNNING:
                for detector in detectors:
                    reason = detector.check(task, snapshot, watch, now)
                    if reason:
                        engine.needs_attention(task.task_id, reason, now_ts=now)
                        report.flagged += 1
                        break

            elif task.status == TaskStatus.NEEDS_ATTENTION:
                if watch.cpu_changed and task.attention_reason in MONITOR_REASONS:
                    engine.resume(task.task_id, now_ts=now)
                    report.resumed += 1

        except (InvalidTransition, TaskNotFound) as e:
            # The producer reported (or the task was cleared) between list and update.
            logger.debug("Task %s changed concurrently: %s", task.task_id, e)
            registry.forget(task.task_id)

    for gone in registry.prune(active_ids):
        logger.debug("Stopped watching task %s", gone)

    if report.failed or report.flagged or report.resumed:
        logger.info(
            "Monitor cycle: checked=%d failed=%d flagged=%d resumed=%d",
            report.checked,
            report.failed,
            report.flagged,
            report.resumed,
        )
    return report


def release_all(engine: LifecycleEngine, registry: MonitorRegistry, monitor_pid: int) -> None:
    """Give up ownership of every watched task (best-effort, on shutdown)."""
    for task_id in registry.task_ids():
        try:
            engine.detach_monitor(task_id, monitor_pid)
        except StorageUnavailable as e:
            logger.warning("Could not release task %s: %s", task_id, e)
            return
        registry.forget(task_id)


async def run_attention_monitor(
        engine: LifecycleEngine,
        registry: MonitorRegistry,
        probe: ProcessProbe,
        *,
        detectors: Sequence[AttentionDetector] = (),
        interval_seconds: float = 2.0,
        monitor_pid: int | None = None,
) -> None:
    """
    Poll forever. A locked or unreadable store is transient: log and retry on
    the next cycle.

    To stop the monitor, cancel the coroutine/task; ownership is released on exit.
    """
    sleep_s = max(0.01, float(interval_seconds))
    me = os.getpid() if monitor_pid is None else int(monitor_pid)
    started_at = _own_start_time(probe, me)
    logger.info("Attention monitor started pid=%s interval=%ss detectors=%s",
                me, sleep_s, [d.name for d in detectors])

    try:
        while True:
            try:
                poll_once(
                    engine,
                    registry,
                    probe,
                    monitor_pid=me,
                    monitor_started_at=started_at,
                    detectors=detectors,
                )
            except StorageUnavailable as e:
                logger.warning("Monitor cycle skipped: %s", e)
            except Exception:
                logger.exception("Monitor cycle failed")

            await asyncio.sleep(sleep_s)
    finally:
        release_all(engine, registry, me)
        logger.info("Attention monitor stopped pid=%s", me)
