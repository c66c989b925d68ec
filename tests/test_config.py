# tests/test_config.py

from __future__ import annotations

from pathlib import Path

from agent_inbox.config import Settings


def test_defaults(monkeypatch, tmp_path: Path) -> None:
    for name in ("DATA_DIR", "DB_PATH", "RETENTION_SECS", "MONITOR_DETECTORS", "BUSY_TIMEOUT"):
        monkeypatch.delenv(f"AGENT_INBOX_{name}", raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))

    s = Settings.from_env()

    assert s.data_dir == tmp_path / "agent-inbox"
    assert s.db_path == tmp_path / "agent-inbox" / "tasks.sqlite3"
    assert s.retention_seconds == 3600
    assert s.monitor_detectors == ["input", "stall"]
    assert s.busy_timeout_seconds == 5.0


def test_overrides_and_bad_values(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_INBOX_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("AGENT_INBOX_DB_PATH", str(tmp_path / "elsewhere.db"))
    monkeypatch.setenv("AGENT_INBOX_RETENTION_SECS", "120")
    monkeypatch.setenv("AGENT_INBOX_MONITOR_INTERVAL", "not-a-number")
    monkeypatch.setenv("AGENT_INBOX_MONITOR_DETECTORS", "Stall, input")
    monkeypatch.setenv("AGENT_INBOX_STALL_TIMEOUT", "90")

    s = Settings.from_env()

    assert s.data_dir == tmp_path / "data"
    assert s.db_path == tmp_path / "elsewhere.db"
    assert s.retention_seconds == 120
    assert s.monitor_interval_seconds == 2.0
    assert s.monitor_detectors == ["stall", "input"]
    assert s.stall_timeout_seconds == 90.0
