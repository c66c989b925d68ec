# src/agent_inbox/tasks/task_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Iterable, Iterator
from dataclasses import replace
from pathlib import Path
from typing import Any

from .task_errors import StorageUnavailable, TaskConflict, TaskNotFound
from .task_lifecycle import plan_transition
from .task_models import ACTIVE_STATUSES, Task, TaskStatus, truncate_title

logger = logging.getLogger(__name__)

_STATUS_VALUES = ",".join(f"'{s.value}'" for s in TaskStatus)

# Nullable columns added after the first schema version (name, declaration).
_MIGRATED_COLUMNS = (
    ("completed_at", "REAL"),
    ("pid", "INTEGER"),
    ("ppid", "INTEGER"),
    ("monitor_pid", "INTEGER"),
    ("monitor_started_at", "REAL"),
    ("attention_reason", "TEXT"),
    ("failure_reason", "TEXT"),
    ("exit_code", "INTEGER"),
    ("context", "TEXT"),
    ("metadata", "TEXT"),
)

_INDEXES = {
    "idx_tasks_status_created": "status, created_at",
    "idx_tasks_status_completed": "status, completed_at",
}


@contextlib.contextmanager
def _immediate(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    One write transaction. BEGIN IMMEDIATE takes the write lock up front, so a
    read-modify-write cannot interleave with another writer.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


class TaskStore:
    """
    SQLite task store shared by many short-lived processes.

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Concurrency:
    - each method opens its own connection, performs one atomic unit, closes it
    - WAL journal: readers see a snapshot and never block writers
    - writers wait at most busy_timeout seconds for the lock, then fail with
      StorageUnavailable
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, busy_timeout: float = 5.0) -> None:
        self._db_path = Path(db_path)
        self._busy_timeout = max(0.1, float(busy_timeout))
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageUnavailable(f"cannot create {self._db_path.parent}: {e}") from e
        self._ensure_schema()
        logger.debug("TaskStore ready db=%s", self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are explicit (see _immediate).
        conn = sqlite3.connect(str(self._db_path), timeout=self._busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    def _configure_conn(self, conn: sqlite3.Connection) -> None:
        conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout * 1000)}")
        with contextlib.suppress(sqlite3.OperationalError):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"cannot open task store {self._db_path}: {e}") from e
        try:
            yield conn
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise StorageUnavailable(f"task store {self._db_path}: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _schema_is_current(conn: sqlite3.Connection) -> bool:
        cols = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()}
        if not cols.issuperset(name for name, _ in _MIGRATED_COLUMNS):
            return False
        indexes = {
            row["name"]
            for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'tasks'"
            ).fetchall()
        }
        return indexes.issuperset(_INDEXES)

    def _ensure_schema(self) -> None:
        # Read-only check first: an up-to-date database never takes the write lock here.
        with self._connection() as conn:
            if self._schema_is_current(conn):
                return

        with self._connection() as conn, _immediate(conn):
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    task_id TEXT NOT NULL UNIQUE,
                    agent_type TEXT NOT NULL,
                    title TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'running'
                        CHECK (status IN ({_STATUS_VALUES})),
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    completed_at REAL,
                    pid INTEGER,
                    ppid INTEGER,
                    monitor_pid INTEGER,
                    monitor_started_at REAL,
                    attention_reason TEXT,
                    failure_reason TEXT,
                    exit_code INTEGER,
                    context TEXT,
                    metadata TEXT
                )
                """
            )

            # Migrations (safe): add missing nullable columns.
            cols = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)").fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            for name, decl in _MIGRATED_COLUMNS:
                add_col(name, decl)

            for name, columns in _INDEXES.items():
                conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON tasks({columns})")

    @staticmethod
    def _blob_to_str(blob: dict[str, Any] | None) -> str | None:
        if blob is None:
            return None
        return json.dumps(blob, ensure_ascii=False, default=str)

    @staticmethod
    def _str_to_blob(s: str | None) -> dict[str, Any] | None:
        if s is None:
            return None
        try:
            val = json.loads(s)
        except ValueError:
            logger.warning("Undecodable JSON blob in task store; returning {}")
            return {}
        return val if isinstance(val, dict) else {}

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        try:
            status = TaskStatus.from_db(row["status"])
        except ValueError as e:
            raise StorageUnavailable(f"corrupt status {row['status']!r} for task {row['task_id']!r}") from e

        return Task(
            task_id=str(row["task_id"]),
            agent_type=str(row["agent_type"]),
            title=str(row["title"] or ""),
            status=status,
            created_at=float(row["created_at"]),
            updated_at=float(row["updated_at"]),
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
            pid=row["pid"],
            ppid=row["ppid"],
            monitor_pid=row["monitor_pid"],
            monitor_started_at=row["monitor_started_at"],
            attention_reason=row["attention_reason"],
            failure_reason=row["failure_reason"],
            exit_code=row["exit_code"],
            context=self._str_to_blob(row["context"]),
            metadata=self._str_to_blob(row["metadata"]),
        )

    # ---- public API ----

    def count(self) -> int:
        with self._connection() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def create(
        self,
        task_id: str,
        agent_type: str,
        title: str,
        *,
        pid: int | None = None,
        ppid: int | None = None,
        context: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        now_ts: float | None = None,
    ) -> Task:
        """
        Insert a new running task in one statement.

        The UNIQUE index on task_id makes concurrent creates race-free: exactly
        one INSERT wins, the others get TaskConflict.
        """
        task_id = (task_id or "").strip()
        agent_type = (agent_type or "").strip()
        if not task_id:
            raise ValueError("task_id is required")
        if not agent_type:
            raise ValueError("agent_type is required")

        now = time.time() if now_ts is None else float(now_ts)
        task = Task(
            task_id=task_id,
            agent_type=agent_type,
            title=truncate_title(title),
            status=TaskStatus.RUNNING,
            created_at=now,
            updated_at=now,
            pid=pid,
            ppid=ppid,
            context=context,
            metadata=metadata,
        )

        with self._connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO tasks(
                        task_id, agent_type, title, status,
                        created_at, updated_at, pid, ppid, context, metadata
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        task.task_id,
                        task.agent_type,
                        task.title,
                        task.status.value,
                        task.created_at,
                        task.updated_at,
                        pid,
                        ppid,
                        self._blob_to_str(context),
                        self._blob_to_str(metadata),
                    ),
                )
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e).upper():
                    raise TaskConflict(task_id) from e
                raise StorageUnavailable(f"task store rejected insert for {task_id!r}: {e}") from e

        logger.debug("Task created task_id=%s agent_type=%s pid=%s", task_id, agent_type, pid)
        return task

    def update_status(
        self,
        task_id: str,
        new_status: TaskStatus,
        *,
        attention_reason: str | None = None,
        exit_code: int | None = None,
        failure_reason: str | None = None,
        now_ts: float | None = None,
    ) -> Task:
        """
        Apply one lifecycle transition atomically.

        Read, validate and write happen under the same write lock; an
        InvalidTransition rolls back and leaves the row untouched.
        """
        now = time.time() if now_ts is None else float(now_ts)

        with self._connection() as conn, _immediate(conn):
            row = conn.execute("SELECT * FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
            if row is None:
                raise TaskNotFound(task_id)

            task = self._row_to_task(row)
            changes = plan_transition(
                task,
                TaskStatus(new_status),
                attention_reason=attention_reason,
                exit_code=exit_code,
                failure_reason=failure_reason,
                now_ts=now,
            )

            assignments = ", ".join(f"{col} = ?" for col in changes)
            conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                (*changes.values(), int(row["id"])),
            )

        changes["status"] = TaskStatus(changes["status"])
        logger.debug("Task %s: %s -> %s", task_id, task.status.value, changes["status"].value)
        return replace(task, **changes)

    def set_monitor_pid(
        self,
        task_id: str,
        monitor_pid: int | None,
        *,
        started_at: float | None = None,
        expected: int | None = None,
        now_ts: float | None = None,
    ) -> bool:
        """
        Best-effort ownership claim for the attention monitor.

        Atomically sets monitor_pid (and the owner's process start time) on an
        active task whose monitor_pid is NULL, already ours, or equal to
        `expected` (a monitor known to be gone). Returns True if the row was
        claimed by this caller.
        """
        now = time.time() if now_ts is None else float(now_ts)
        active = [s.value for s in ACTIVE_STATUSES]
        if monitor_pid is None:
            started_at = None

        with self._connection() as conn:
            cur = conn.execute(
                """
                UPDATE tasks
                SET monitor_pid = ?, monitor_started_at = ?, updated_at = MAX(updated_at, ?)
                WHERE task_id = ?
                  AND status IN (?, ?)
                  AND (monitor_pid IS NULL OR monitor_pid = ? OR monitor_pid = ?)
                """,
                (monitor_pid, started_at, now, task_id, *active, monitor_pid, expected),
            )
            return cur.rowcount == 1

    def get(self, task_id: str) -> Task:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE task_id = ?", (task_id,)).fetchone()
            if row is None:
                raise TaskNotFound(task_id)
            return self._row_to_task(row)

    def list(
        self,
        *,
        status: TaskStatus | Iterable[TaskStatus] | None = None,
        agent_type: str | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        """
        Snapshot of tasks ordered by creation (ties broken by insertion order).

        One SELECT on one connection: under WAL it sees a single committed
        point in time, never a half-applied transition.
        """
        where: list[str] = []
        params: list[Any] = []

        if status is not None:
            statuses = [status] if isinstance(status, str) else list(status)
            values = [TaskStatus(s).value for s in statuses]
            if not values:
                return []
            where.append(f"status IN ({','.join('?' for _ in values)})")
            params.extend(values)

        if agent_type:
            where.append("agent_type = ?")
            params.append(agent_type)

        sql = "SELECT * FROM tasks"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY created_at ASC, id ASC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [self._row_to_task(r) for r in rows]

    def delete(self, task_id: str) -> None:
        """Idempotent: deleting an unknown task is not an error."""
        with self._connection() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE task_id = ?", (task_id,))
            logger.debug("Task delete task_id=%s removed=%s", task_id, cur.rowcount)

    def delete_where(
        self,
        statuses: Iterable[TaskStatus],
        *,
        completed_before: float | None = None,
    ) -> int:
        """
        Set-based deletion in a single statement.

        Rows match when their status is in `statuses` and, if completed_before
        is given, completed_at < completed_before.
        """
        values = [TaskStatus(s).value for s in statuses]
        if not values:
            return 0

        sql = f"DELETE FROM tasks WHERE status IN ({','.join('?' for _ in values)})"
        params: list[Any] = list(values)
        if completed_before is not None:
            sql += " AND completed_at IS NOT NULL AND completed_at < ?"
            params.append(float(completed_before))

        with self._connection() as conn:
            cur = conn.execute(sql, params)
            return int(cur.rowcount)
