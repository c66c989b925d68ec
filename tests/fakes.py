# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field

import psutil

from agent_inbox.monitor.probe import ProcessSnapshot
from agent_inbox.tasks.task_errors import MonitorProbeFailed


@dataclass(slots=True)
class FakeProcess:
    alive: bool = True
    state: str = psutil.STATUS_RUNNING
    cpu_time: float = 1.0
    stdin_tty: bool = False
    create_time: float | None = None
    denied: bool = False


@dataclass(slots=True)
class FakeProbe:
    """
    Scripted ProcessProbe for monitor tests.

    Unknown pids are dead; `processes` can be mutated between cycles.
    """

    processes: dict[int, FakeProcess] = field(default_factory=dict)
    probed: list[int] = field(default_factory=list)

    def is_alive(self, pid: int) -> bool:
        proc = self.processes.get(pid)
        return proc is not None and proc.alive

    def probe(self, pid: int) -> ProcessSnapshot:
        self.probed.append(pid)
        proc = self.processes.get(pid)
        if proc is None or not proc.alive:
            return ProcessSnapshot(pid=pid, alive=False)
        if proc.denied:
            raise MonitorProbeFailed(pid, "access denied")
        return ProcessSnapshot(
            pid=pid,
            alive=True,
            state=proc.state,
            cpu_time=proc.cpu_time,
            create_time=proc.create_time,
            stdin_tty=proc.stdin_tty,
        )
