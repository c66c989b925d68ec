# src/agent_inbox/monitor/probe.py

"""Process probes for the attention monitor (psutil + /proc)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import psutil

from ..tasks.task_errors import MonitorProbeFailed

logger = logging.getLogger(__name__)

_TERMINAL_PREFIXES = ("/dev/pts/", "/dev/tty")


@dataclass(slots=True, frozen=True)
class ProcessSnapshot:
    pid: int
    alive: bool
    state: str | None = None
    cpu_time: float | None = None
    create_time: float | None = None
    # stdin is a terminal device (pts/tty)
    stdin_tty: bool = False


class PsutilProcessProbe:
    """
    Non-blocking probe: every call is a handful of /proc reads with bounded
    cost. The probed process is never signalled or waited on.
    """

    def is_alive(self, pid: int) -> bool:
        if pid is None or pid <= 0:
            return False
        try:
            return psutil.Process(pid).status() not in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD)
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists but belongs to someone else.
            return True

    def probe(self, pid: int) -> ProcessSnapshot:
        if pid is None or pid <= 0:
            raise MonitorProbeFailed(pid or 0, "invalid pid")

        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                state = proc.status()
                if state in (psutil.STATUS_ZOMBIE, psutil.STATUS_DEAD):
                    return ProcessSnapshot(pid=pid, alive=False, state=state)
                times = proc.cpu_times()
                create_time = proc.create_time()
        except psutil.NoSuchProcess:
            return ProcessSnapshot(pid=pid, alive=False)
        except psutil.AccessDenied as e:
            raise MonitorProbeFailed(pid, "access denied") from e
        except OSError as e:
            raise MonitorProbeFailed(pid, str(e)) from e

        return ProcessSnapshot(
            pid=pid,
            alive=True,
            state=state,
            cpu_time=float(times.user + times.system),
            create_time=float(create_time),
            stdin_tty=self._stdin_is_terminal(pid),
        )

    @staticmethod
    def _stdin_is_terminal(pid: int) -> bool:
        # Linux only; elsewhere the input-wait detector simply never fires.
        try:
            link = os.readlink(f"/proc/{pid}/fd/0")
        except OSError:
            return False
        return link.startswith(_TERMINAL_PREFIXES)
