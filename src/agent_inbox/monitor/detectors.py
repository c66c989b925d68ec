# src/agent_inbox/monitor/detectors.py

"""
Attention detectors.

Each detector looks at one running task, its latest process snapshot and the
monitor's watch state, and returns a human-readable reason or None. Thresholds
are configuration (see Settings), not contract.
"""

from __future__ import annotations

import logging
from typing import Protocol

import psutil

from ..tasks.task_models import Task
from .probe import ProcessSnapshot
from .registry import WatchState

logger = logging.getLogger(__name__)

WAITING_FOR_INPUT = "Waiting for input"
PROCESS_STALLED = "Process stalled (no activity)"

# Reasons this monitor raises itself; only these are cleared again by renewed activity.
MONITOR_REASONS = frozenset({WAITING_FOR_INPUT, PROCESS_STALLED})


class AttentionDetector(Protocol):
    name: str

    def check(
            self,
            task: Task,
            snapshot: ProcessSnapshot,
            watch: WatchState,
            now_ts: float,
    ) -> str | None: ...


class InputWaitDetector:
    """
    Process is sleeping with a terminal on stdin and has burned no CPU for a
    while: most likely blocked on an interactive prompt.
    """

    name = "input"

    def __init__(self, *, min_age_seconds: float = 10.0, min_idle_seconds: float = 5.0) -> None:
        self.min_age_seconds = float(min_age_seconds)
        self.min_idle_seconds = float(min_idle_seconds)

    def check(self, task: Task, snapshot: ProcessSnapshot, watch: WatchState, now_ts: float) -> str | None:
        if snapshot.state != psutil.STATUS_SLEEPING or not snapshot.stdin_tty:
            return None
        # Short-lived or just-active processes sleep on stdin all the time.
        if now_ts - task.created_at <= self.min_age_seconds:
            return None
        if watch.idle_seconds(now_ts) <= self.min_idle_seconds:
            return None
        return WAITING_FOR_INPUT


class StallDetector:
    """No CPU progress for longer than the stall timeout."""

    name = "stall"

    def __init__(self, *, timeout_seconds: float = 600.0, min_age_seconds: float = 30.0) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self.min_age_seconds = float(min_age_seconds)

    def check(self, task: Task, snapshot: ProcessSnapshot, watch: WatchState, now_ts: float) -> str | None:
        if snapshot.cpu_time is None or watch.cpu_changed:
            return None
        if watch.idle_seconds(now_ts) <= self.timeout_seconds:
            return None
        if now_ts - task.created_at <= self.min_age_seconds:
            return None
        return PROCESS_STALLED


def create_detectors(settings) -> list[AttentionDetector]:
    """Build the enabled detectors, in settings order."""
    available = {
        "input": lambda: InputWaitDetector(
            min_age_seconds=settings.input_min_age_seconds,
            min_idle_seconds=settings.input_idle_seconds,
        ),
        "stall": lambda: StallDetector(
            timeout_seconds=settings.stall_timeout_seconds,
            min_age_seconds=settings.stall_min_age_seconds,
        ),
    }

    detectors: list[AttentionDetector] = []
    for name in settings.monitor_detectors:
        factory = available.get(name)
        if factory is None:
            logger.warning("Unknown attention detector %r ignored", name)
            continue
        detectors.append(factory())
    return detectors
