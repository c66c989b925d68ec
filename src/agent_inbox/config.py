# src/agent_inbox/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object per process (producers are short-lived, so this is cheap).
- Paths are absolute by default: producers run from arbitrary working directories.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ENV_PREFIX = "AGENT_INBOX"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def default_data_dir() -> Path:
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / "agent-inbox"


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths ----
    data_dir: Path
    db_path: Path
    busy_timeout_seconds: float

    # ---- Retention ----
    retention_seconds: int
    cleanup_interval_seconds: float

    # ---- Attention monitor ----
    monitor_interval_seconds: float
    monitor_detectors: List[str]
    input_min_age_seconds: float
    input_idle_seconds: float
    stall_timeout_seconds: float
    stall_min_age_seconds: float

    # ---- Presentation ----
    watch_interval_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "agent-inbox") or "agent-inbox"
        # Producers print nothing unless something goes wrong.
        log_level = _env(_k("LOG_LEVEL"), "WARNING")

        data_dir = _env_path(_k("DATA_DIR"), default_data_dir())
        db_path = _env_path(_k("DB_PATH"), data_dir / "tasks.sqlite3")
        busy_timeout_seconds = max(0.1, _env_float(_k("BUSY_TIMEOUT"), 5.0))

        retention_seconds = max(0, _env_int(_k("RETENTION_SECS"), 3600))
        cleanup_interval_seconds = max(1.0, _env_float(_k("CLEANUP_INTERVAL"), 300.0))

        monitor_interval_seconds = max(0.1, _env_float(_k("MONITOR_INTERVAL"), 2.0))
        monitor_detectors = [d.lower() for d in _env_list(_k("MONITOR_DETECTORS"), ["input", "stall"])]
        input_min_age_seconds = _env_float(_k("INPUT_MIN_AGE"), 10.0)
        input_idle_seconds = _env_float(_k("INPUT_IDLE"), 5.0)
        stall_timeout_seconds = _env_float(_k("STALL_TIMEOUT"), 600.0)
        stall_min_age_seconds = _env_float(_k("STALL_MIN_AGE"), 30.0)

        watch_interval_seconds = max(0.2, _env_float(_k("WATCH_INTERVAL"), 2.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            busy_timeout_seconds=busy_timeout_seconds,
            retention_seconds=retention_seconds,
            cleanup_interval_seconds=cleanup_interval_seconds,
            monitor_interval_seconds=monitor_interval_seconds,
            monitor_detectors=monitor_detectors,
            input_min_age_seconds=input_min_age_seconds,
            input_idle_seconds=input_idle_seconds,
            stall_timeout_seconds=stall_timeout_seconds,
            stall_min_age_seconds=stall_min_age_seconds,
            watch_interval_seconds=watch_interval_seconds,
        )


def get_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings.from_env()
