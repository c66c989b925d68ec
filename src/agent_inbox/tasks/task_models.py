# src/agent_inbox/tasks/task_models.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

TITLE_MAX_LEN = 100


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - completed / failed are terminal; no transition leaves them.
    - needs_attention is the only status that carries attention_reason.
    """

    RUNNING = "running"
    NEEDS_ATTENTION = "needs_attention"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        """Decode a stored status. Unknown values are refused, never defaulted."""
        if not raw:
            raise ValueError("empty task status")
        return cls(raw)

    @classmethod
    def parse(cls, raw: str) -> TaskStatus:
        """Lenient parser for user input: 'Running', 'needs-attention', ..."""
        return cls(raw.strip().lower().replace("-", "_"))


TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})
ACTIVE_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.RUNNING, TaskStatus.NEEDS_ATTENTION})


def truncate_title(title: str, limit: int = TITLE_MAX_LEN) -> str:
    title = (title or "").strip()
    if len(title) <= limit:
        return title
    return title[:limit].rstrip()


@dataclass(slots=True)
class Task:
    task_id: str
    agent_type: str
    title: str
    status: TaskStatus

    created_at: float
    updated_at: float
    completed_at: float | None = None

    pid: int | None = None
    ppid: int | None = None
    monitor_pid: int | None = None
    # create_time of the owning monitor process; tells a live owner from a recycled pid
    monitor_started_at: float | None = None

    attention_reason: str | None = None
    failure_reason: str | None = None
    exit_code: int | None = None

    context: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d
