# src/agent_inbox/cli/display.py

from __future__ import annotations

import json
from datetime import datetime

from ..tasks.task_models import Task, TaskStatus

STATUS_LABELS = {
    TaskStatus.RUNNING: "running",
    TaskStatus.NEEDS_ATTENTION: "ATTENTION",
    TaskStatus.COMPLETED: "done",
    TaskStatus.FAILED: "FAILED",
}


def format_age(seconds: float) -> str:
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h{(seconds % 3600) // 60:02d}m"
    return f"{seconds // 86400}d"


def _ts_local(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M:%S")


def render_table(tasks: list[Task], now_ts: float) -> str:
    if not tasks:
        return "No tasks."

    rows = [("ID", "AGENT", "STATUS", "AGE", "TITLE")]
    for t in tasks:
        title = t.title
        if t.status == TaskStatus.NEEDS_ATTENTION and t.attention_reason:
            title = f"{title} [{t.attention_reason}]"
        rows.append((t.task_id[:12], t.agent_type, STATUS_LABELS[t.status], format_age(now_ts - t.created_at), title))

    widths = [max(len(r[i]) for r in rows) for i in range(4)]
    lines = []
    for r in rows:
        lines.append("  ".join(cell.ljust(widths[i]) for i, cell in enumerate(r[:4])) + "  " + r[4])
    return "\n".join(line.rstrip() for line in lines)


def render_detail(task: Task) -> str:
    lines = [
        f"Task:        {task.task_id}",
        f"Agent:       {task.agent_type}",
        f"Title:       {task.title}",
        f"Status:      {task.status.value}",
        f"Created:     {_ts_local(task.created_at)}",
        f"Updated:     {_ts_local(task.updated_at)}",
        f"Completed:   {_ts_local(task.completed_at)}",
        f"PID/PPID:    {task.pid if task.pid is not None else '-'}/{task.ppid if task.ppid is not None else '-'}",
    ]
    if task.monitor_pid is not None:
        lines.append(f"Monitor PID: {task.monitor_pid}")
    if task.attention_reason:
        lines.append(f"Attention:   {task.attention_reason}")
    if task.failure_reason:
        lines.append(f"Failure:     {task.failure_reason}")
    if task.exit_code is not None:
        lines.append(f"Exit code:   {task.exit_code}")
    for key, value in sorted((task.context or {}).items()):
        lines.append(f"  {key}: {value}")
    if task.metadata:
        lines.append(f"Metadata:    {json.dumps(task.metadata, ensure_ascii=False, sort_keys=True)}")
    return "\n".join(lines)


def to_json(payload) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
