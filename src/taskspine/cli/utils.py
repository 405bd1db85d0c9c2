"""
CLI utility helpers: output formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from taskspine.core.errors import TaskSpineError
from taskspine.core.scheduling.models import SchedulerStatus

console = Console()
err_console = Console(stderr=True)


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output_json(data: Any) -> None:
    """Print *data* as JSON (lists of dataclasses are converted item-wise)."""
    payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
    console.print_json(json.dumps(payload, default=str))


def output_error(error: TaskSpineError | Exception, *, code: int = 1) -> None:
    """Print an error and exit with *code*."""
    if isinstance(error, TaskSpineError):
        err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=code)


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("" if v is None else str(v) for v in row.values()))
    console.print(table)


def print_status(status: SchedulerStatus, *, title: str = "Scheduler status") -> None:
    """Render a scheduler snapshot."""
    state = "[green]started[/green]" if status.is_started else "[yellow]stopped[/yellow]"
    console.print(f"[bold]{title}[/bold]: {state}, {status.task_count} task(s)")
    print_table(
        [
            {
                "name": t.name,
                "schedule": t.schedule_expression,
                "running": t.is_running,
                "last_run": t.last_run.isoformat() if t.last_run else None,
                "next_run": t.next_run.isoformat() if t.next_run else None,
                "runs": t.run_count,
                "failed": t.failure_count,
                "skipped": t.skip_count,
            }
            for t in status.tasks
        ]
    )
