# src/agent_inbox/cli/main.py

"""
CLI entrypoint.

Producers (wrapper scripts, manual reporters, the extension bridge) call
`agent-inbox report ...`; dashboards and people call list/show/clear/watch.
`agent-inbox monitor` runs the long-lived attention monitor and the periodic
retention sweeper in one process.

Exit codes: 0 ok (duplicate reports included), 1 recoverable task error,
2 storage unavailable.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import os
import signal
import time

import click

from .. import __version__
from ..config import get_settings
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..monitor.attention_monitor import run_attention_monitor
from ..monitor.detectors import create_detectors
from ..monitor.probe import PsutilProcessProbe
from ..monitor.registry import MonitorRegistry
from ..tasks import task_api
from ..tasks.task_errors import StorageUnavailable, TaskError
from ..tasks.task_models import TaskStatus
from ..tasks.task_retention import run_retention_sweeper
from .bootstrap import create_initial_state
from .display import render_detail, render_table, to_json

logger = logging.getLogger(__name__)

STATUS_CHOICES = [s.value for s in TaskStatus] + [s.value.replace("_", "-") for s in TaskStatus if "_" in s.value]


class StorageError(click.ClickException):
    exit_code = 2


def _state(ctx: click.Context) -> AppState:
    """Build AppState on first use (so --help never touches the database)."""
    obj = ctx.ensure_object(dict)
    if "state" not in obj:
        try:
            obj["state"] = create_initial_state(settings=obj["settings"])
        except StorageUnavailable as e:
            raise StorageError(str(e)) from e
    return obj["state"]


def handle_task_errors(fn):
    """Turn task errors into click errors with the documented exit codes."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StorageUnavailable as e:
            logger.error("Storage unavailable: %s", e)
            raise StorageError(str(e)) from e
        except (TaskError, ValueError) as e:
            raise click.ClickException(str(e)) from e

    return wrapper


def _parse_meta(pairs: tuple[str, ...]) -> dict[str, str]:
    meta: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--meta")
        meta[key.strip()] = value
    return meta


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.version_option(__version__, "-v", "--version", help="Show the version and exit.")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Local inbox for asynchronous agent tasks."""
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.WARNING)
    try:
        setup_logging(
            log_dir=settings.data_dir,
            console_level=console_level,
            log_name=f"{settings.app_name}.log",
        )
    except OSError as e:
        raise StorageError(f"cannot write to data dir {settings.data_dir}: {e}") from e

    ctx.ensure_object(dict)["settings"] = settings


# ---- producer surface ----


@cli.group()
def report() -> None:
    """Report task lifecycle events (used by wrapper scripts)."""


@report.command("start")
@click.argument("task_id")
@click.option("--agent-type", "-a", required=True, help="Producer class, e.g. claude_code.")
@click.option("--cwd", default=None, help="Working directory (defaults to the current one).")
@click.option("--title", "-t", default=None, help="Short description (truncated to 100 chars).")
@click.option("--pid", type=int, default=None, help="Process to watch for liveness.")
@click.option("--ppid", type=int, default=None)
@click.option("--url", default=None)
@click.option("--session-id", default=None)
@click.option("--meta", "meta_pairs", multiple=True, metavar="KEY=VALUE", help="Producer metadata.")
@click.pass_context
@handle_task_errors
def report_start(ctx, task_id, agent_type, cwd, title, pid, ppid, url, session_id, meta_pairs) -> None:
    """Announce a new running task."""
    task = task_api.report_start(
        _state(ctx),
        task_id,
        agent_type,
        cwd=cwd if cwd is not None else os.getcwd(),
        title=title,
        pid=pid,
        ppid=ppid,
        url=url,
        session_id=session_id,
        metadata=_parse_meta(meta_pairs),
    )
    click.echo(task.task_id)


@report.command("needs-attention")
@click.argument("task_id")
@click.argument("reason")
@click.pass_context
@handle_task_errors
def report_needs_attention(ctx, task_id, reason) -> None:
    """Flag a task as waiting on the user."""
    task_api.report_needs_attention(_state(ctx), task_id, reason)


@report.command("resume")
@click.argument("task_id")
@click.pass_context
@handle_task_errors
def report_resume(ctx, task_id) -> None:
    """Mark a task as running again after attention."""
    task_api.report_resume(_state(ctx), task_id)


@report.command("complete")
@click.argument("task_id")
@click.option("--exit-code", type=int, default=None)
@click.pass_context
@handle_task_errors
def report_complete(ctx, task_id, exit_code) -> None:
    task_api.report_complete(_state(ctx), task_id, exit_code)


@report.command("failed")
@click.argument("task_id")
@click.option("--exit-code", type=int, required=True)
@click.pass_context
@handle_task_errors
def report_failed(ctx, task_id, exit_code) -> None:
    task_api.report_failed(_state(ctx), task_id, exit_code)


# ---- query surface ----


@cli.command("list")
@click.option("--status", "-s", type=click.Choice(STATUS_CHOICES, case_sensitive=False), default=None)
@click.option("--all", "show_all", is_flag=True, help="Include finished tasks.")
@click.option("--agent-type", "-a", default=None)
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
@handle_task_errors
def list_cmd(ctx, status, show_all, agent_type, as_json) -> None:
    """List tasks (active ones unless --all or --status)."""
    tasks = task_api.list_tasks(
        _state(ctx),
        status=TaskStatus.parse(status) if status else None,
        show_all=show_all,
        agent_type=agent_type,
    )
    if as_json:
        click.echo(to_json([t.to_dict() for t in tasks]))
    else:
        click.echo(render_table(tasks, time.time()))


@cli.command("show")
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True)
@click.pass_context
@handle_task_errors
def show_cmd(ctx, task_id, as_json) -> None:
    task = task_api.show_task(_state(ctx), task_id)
    click.echo(to_json(task.to_dict()) if as_json else render_detail(task))


@cli.command("clear")
@click.argument("task_id")
@click.pass_context
@handle_task_errors
def clear_cmd(ctx, task_id) -> None:
    """Delete one task (no error if it does not exist)."""
    task_api.clear_task(_state(ctx), task_id)


@cli.command("clear-all")
@click.pass_context
@handle_task_errors
def clear_all_cmd(ctx) -> None:
    """Delete every completed or failed task."""
    n = task_api.clear_all(_state(ctx))
    click.echo(f"Cleared {n} task(s).")


@cli.command("cleanup")
@click.option("--retention-secs", type=click.IntRange(min=0), default=None,
              help="Override the retention window (default from settings).")
@click.pass_context
@handle_task_errors
def cleanup_cmd(ctx, retention_secs) -> None:
    """Delete finished tasks older than the retention window."""
    n = task_api.cleanup(_state(ctx), retention_secs)
    click.echo(f"Removed {n} task(s).")


@cli.command("watch")
@click.option("--interval", type=float, default=None)
@click.option("--all", "show_all", is_flag=True)
@click.pass_context
@handle_task_errors
def watch_cmd(ctx, interval, show_all) -> None:
    """Refresh the task list until interrupted."""
    state = _state(ctx)
    interval = interval if interval is not None else state.settings.watch_interval_seconds
    try:
        while True:
            tasks = task_api.list_tasks(state, show_all=show_all)
            click.clear()
            click.echo(render_table(tasks, time.time()))
            time.sleep(max(0.2, interval))
    except KeyboardInterrupt:
        pass


# ---- background service ----


async def _run_monitor_service(state: AppState, interval_seconds: float) -> None:
    settings = state.settings

    # SIGTERM cancels the service so the monitor releases its tasks on the way out.
    main_task = asyncio.current_task()
    if main_task is not None:
        with contextlib.suppress(NotImplementedError):
            asyncio.get_running_loop().add_signal_handler(signal.SIGTERM, main_task.cancel)

    try:
        await asyncio.gather(
            run_attention_monitor(
                state.engine,
                MonitorRegistry(),
                PsutilProcessProbe(),
                detectors=create_detectors(settings),
                interval_seconds=interval_seconds,
            ),
            run_retention_sweeper(
                state.task_store,
                retention_seconds=settings.retention_seconds,
                interval_seconds=settings.cleanup_interval_seconds,
            ),
        )
    except asyncio.CancelledError:
        logger.info("Monitor service cancelled, shutting down...")


@cli.command("monitor")
@click.option("--interval", type=float, default=None, help="Seconds between monitor cycles.")
@click.pass_context
@handle_task_errors
def monitor_cmd(ctx, interval) -> None:
    """Run the attention monitor and the retention sweeper until interrupted."""
    state = _state(ctx)
    interval = interval if interval is not None else state.settings.monitor_interval_seconds
    try:
        asyncio.run(_run_monitor_service(state, interval))
    except KeyboardInterrupt:
        logger.info("Monitor interrupted, exiting.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
