"""
Root Typer application for the taskspine CLI.

Commands:
    dev                 Schedule every catalog task and run until Ctrl+C
    start <task>        Schedule one catalog task and run until Ctrl+C
    list-tasks          Show the task catalog
    status              Check configuration and catalog schedules
    validate <expr>     Validate a schedule expression, show next ticks
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from taskspine.cli.runtime import SchedulerRunner, build_scheduler
from taskspine.cli.utils import console, err_console, output_error, output_json, print_status, print_table
from taskspine.core.errors import ConfigError, TaskNotFoundError, TaskSpineError
from taskspine.core.logging import configure_logging, get_logger
from taskspine.core.scheduling.cron import next_fire_time, next_fire_times, validate_schedule_expression
from taskspine.core.settings import TaskSpineSettings, get_settings
from taskspine.tasks import AVAILABLE_TASKS, get_available_task_names, get_task

logger = get_logger(__name__)

app = typer.Typer(
    name="taskspine",
    help="taskspine: recurring-task scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("taskspine")
        except PackageNotFoundError:
            from taskspine import __version__ as v
        typer.echo(f"taskspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """taskspine CLI: run and inspect scheduled tasks."""


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_settings(timezone: str | None = None, log_level: str | None = None) -> TaskSpineSettings:
    try:
        settings = get_settings()
        overrides = {}
        if timezone:
            overrides["timezone"] = timezone
        if log_level:
            overrides["log_level"] = log_level
        if overrides:
            settings = TaskSpineSettings.model_validate({**settings.model_dump(), **overrides})
    except ValidationError as exc:
        output_error(ConfigError(f"Invalid configuration: {exc.errors()[0]['msg']}", cause=exc))
    return settings


def _run(tasks: dict, settings: TaskSpineSettings, status_interval: float) -> None:
    configure_logging(
        level=settings.log_level,
        json_format=settings.json_logs,
        service=settings.service_name,
    )
    runner = SchedulerRunner(build_scheduler(settings), tasks, status_interval=status_interval)
    try:
        runner.run()
    except TaskSpineError as exc:
        logger.error("Failed to start scheduler", **exc.to_dict())
        output_error(exc)
    print_status(runner.scheduler.get_status(), title="Final status")


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("dev")
def dev(
    timezone: str | None = typer.Option(None, "--timezone", "--tz", help="Override the time zone."),
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level."),
    status_interval: float | None = typer.Option(
        None, "--status-interval", help="Seconds between status log lines."
    ),
) -> None:
    """Start all available tasks for development."""
    settings = _load_settings(timezone, log_level)
    console.print(f"[bold green]Starting development mode[/bold green] ({len(AVAILABLE_TASKS)} task(s))")
    _run(dict(AVAILABLE_TASKS), settings, status_interval or settings.dev_status_interval_seconds)


@app.command("start")
def start(
    task_name: str = typer.Argument(..., help="Catalog name of the task to run"),
    timezone: str | None = typer.Option(None, "--timezone", "--tz", help="Override the time zone."),
    log_level: str | None = typer.Option(None, "--log-level", help="Override the log level."),
    status_interval: float | None = typer.Option(
        None, "--status-interval", help="Seconds between status log lines."
    ),
) -> None:
    """Start a specific task by name."""
    definition = get_task(task_name)
    if definition is None:
        err_console.print(f"Available tasks: {', '.join(get_available_task_names())}")
        output_error(TaskNotFoundError(task_name))

    settings = _load_settings(timezone, log_level)
    console.print(f"[bold green]Starting task[/bold green] {task_name}")
    _run({task_name: definition}, settings, status_interval or settings.status_interval_seconds)


@app.command("list-tasks")
def list_tasks(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List all available tasks."""
    if json_out:
        output_json(
            [
                {
                    "key": key,
                    "name": d.name,
                    "description": d.description,
                    "schedule_expression": d.schedule_expression,
                }
                for key, d in AVAILABLE_TASKS.items()
            ]
        )
        return

    print_table(
        [
            {"key": key, "name": d.name, "description": d.description, "schedule": d.schedule_expression}
            for key, d in AVAILABLE_TASKS.items()
        ],
        title="Available tasks",
    )


@app.command("status")
def status(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Check configuration and the schedules of every catalog task."""
    settings = _load_settings()

    rows = []
    invalid = 0
    for key, definition in AVAILABLE_TASKS.items():
        valid = validate_schedule_expression(definition.schedule_expression)
        invalid += 0 if valid else 1
        upcoming = next_fire_time(definition.schedule_expression, settings.timezone) if valid else None
        rows.append(
            {
                "key": key,
                "schedule": definition.schedule_expression,
                "valid": valid,
                "next_run": upcoming.isoformat() if upcoming else None,
            }
        )

    if json_out:
        output_json(
            {
                "timezone": settings.timezone,
                "log_level": settings.log_level,
                "tasks": rows,
            }
        )
    else:
        console.print("[green]✓[/green] Configuration: OK")
        console.print(f"  [cyan]timezone[/cyan]: {settings.timezone}")
        console.print(f"  [cyan]log_level[/cyan]: {settings.log_level}")
        print_table(rows, title="Catalog schedules")

    if invalid:
        raise typer.Exit(code=1)


@app.command("validate")
def validate(
    expression: str = typer.Argument(..., help="Schedule expression, quoted"),
    count: int = typer.Option(5, "--count", "-n", min=0, help="Upcoming ticks to show."),
    timezone: str | None = typer.Option(None, "--timezone", "--tz"),
) -> None:
    """Validate a schedule expression and show its next ticks."""
    if not validate_schedule_expression(expression):
        err_console.print(f"[bold red]✗[/bold red] Invalid schedule expression: {expression!r}")
        raise typer.Exit(code=1)

    settings = _load_settings(timezone)
    console.print(f"[green]✓[/green] Valid schedule expression: {expression!r}")
    for tick in next_fire_times(expression, settings.timezone, count):
        console.print(f"  {tick.isoformat()}")
