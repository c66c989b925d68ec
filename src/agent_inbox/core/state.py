# src/agent_inbox/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..tasks.task_lifecycle import LifecycleEngine
from ..tasks.task_store import TaskStore


@dataclass(slots=True)
class AppState:
    """Everything one process needs: settings, the store and the engine over it."""

    # Settings (or a compatible object in tests).
    settings: Any

    task_store: TaskStore
    engine: LifecycleEngine
