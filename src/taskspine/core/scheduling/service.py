"""Task scheduler - registry, lifecycle and guarded execution.

Manifesto:
    A recurring task must never overlap itself, must never take the
    process down when it fails, and must leave a trace of what it did.
    TaskScheduler owns one timer per task and wraps every tick in an
    overlap guard that skips (never queues) a tick while the previous run
    is still in flight.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TASK SCHEDULER ARCHITECTURE                                                  │
│                                                                               │
│   register(name, definition)                                                 │
│      ├── validate expression ──► ScheduleConfigError                         │
│      ├── engine.schedule(expr, tick, tz) ──► disarmed TimerHandle            │
│      └── registry[name] = ScheduledTaskEntry                                 │
│                                                                               │
│   start() / stop()            arm / disarm every handle                      │
│                                                                               │
│   tick ──► _execute(name)                                                    │
│              1. entry lookup (missing → log, return)                         │
│              2. entry.begin_run()  (False → log skip, return)                │
│              3. await task_function()                                        │
│              4. success → log  |  failure → TaskExecutionError, log          │
│              5. finally entry.end_run()                                      │
│                                                                               │
│   get_status() ──► SchedulerStatus(TaskInfo...)                              │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    taskspine, scheduling, cron, overlap-guard, service
"""

from __future__ import annotations

import asyncio
import inspect
import warnings
from collections.abc import Mapping
from types import TracebackType
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from taskspine.core.errors import (
    BulkRegistrationError,
    DuplicateRegistrationWarning,
    ErrorContext,
    InvalidConfigError,
    LifecycleMisuseWarning,
    ScheduleConfigError,
    SchedulerError,
    TaskExecutionError,
    TaskSpineError,
)
from taskspine.core.logging import LogContext, get_logger
from taskspine.core.settings import DEFAULT_TIMEZONE

from .cron import validate_schedule_expression
from .models import ScheduledTaskEntry, SchedulerStatus, TaskDefinition, TaskInfo
from .protocol import TickCallback, TimerEngine

logger = get_logger(__name__)


def _log(level: str, event: str, **kw: Any) -> None:
    """Emit a log line; a broken log sink never interrupts scheduling."""
    try:
        getattr(logger, level)(event, **kw)
    except Exception:  # noqa: BLE001
        pass


def _warn(message: str, category: type[Warning]) -> None:
    """Emit a misuse warning; an ``error`` warnings filter never makes it fatal."""
    try:
        warnings.warn(message, category, stacklevel=3)
    except Warning:
        pass


class TaskScheduler:
    """Recurring-task scheduler with a per-task overlap guard.

    Example:
        >>> from taskspine.core.scheduling import APSchedulerEngine, TaskScheduler
        >>> scheduler = TaskScheduler(APSchedulerEngine(), timezone="UTC")
        >>> scheduler.register("hello", hello_definition)
        >>> scheduler.start()
        >>> # Later...
        >>> scheduler.shutdown()
    """

    def __init__(
        self,
        engine: TimerEngine,
        *,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        """Initialize scheduler.

        Args:
            engine: Timer engine creating one handle per task
            timezone: IANA zone schedule expressions are evaluated in

        Raises:
            InvalidConfigError: If *timezone* is not a known zone
        """
        try:
            ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise InvalidConfigError("timezone", timezone) from e

        self.engine = engine
        self.timezone = timezone
        self._tasks: dict[str, ScheduledTaskEntry] = {}
        # Removed entries whose body is still in flight, by name.
        self._draining: dict[str, ScheduledTaskEntry] = {}
        self._started = False
        _log(
            "info",
            "TaskScheduler initialized",
            engine=getattr(engine, "name", type(engine).__name__),
            timezone=timezone,
        )

    # === Registration ===

    def register(self, task_name: str, definition: TaskDefinition) -> None:
        """Register a task under *task_name*.

        Registering an existing name logs a warning and does nothing. A task
        registered while the scheduler is started is armed immediately.

        Raises:
            ScheduleConfigError: If the schedule expression is invalid
        """
        if task_name in self._tasks:
            _log("warning", "Task already scheduled", task_name=task_name)
            _warn(f"Task {task_name} is already scheduled", DuplicateRegistrationWarning)
            return

        if task_name in self._draining:
            _log("warning", "Previous instance still running, ticks skipped until it finishes", task_name=task_name)

        expression = definition.schedule_expression
        if not self.validate_schedule_expression(expression) or not self.engine.validate(expression):
            raise ScheduleConfigError(
                f"Invalid schedule expression for task {task_name}: {expression}",
                context=ErrorContext(
                    task_name=task_name,
                    schedule_expression=expression,
                    timezone=self.timezone,
                ),
            )

        _log(
            "info",
            "Scheduling task",
            task_name=task_name,
            description=definition.description,
            schedule_expression=expression,
        )

        timer = self.engine.schedule(
            expression,
            self._make_tick(task_name),
            timezone=self.timezone,
            name=task_name,
        )
        entry = ScheduledTaskEntry(task_name=task_name, definition=definition, timer=timer)
        self._tasks[task_name] = entry

        if self._started:
            timer.start()
            _log("info", "Started task", task_name=task_name)

        _log("info", "Task scheduled successfully", task_name=task_name)

    def register_bulk(self, definitions: Mapping[str, TaskDefinition]) -> list[str]:
        """Register every entry of *definitions* independently.

        A failing entry does not stop the others. Once every entry has been
        tried, failures are raised together.

        Returns:
            Names newly added to the registry

        Raises:
            BulkRegistrationError: If one or more entries failed
        """
        registered: list[str] = []
        failures: dict[str, TaskSpineError] = {}

        for task_name, definition in definitions.items():
            already = task_name in self._tasks
            try:
                self.register(task_name, definition)
            except ScheduleConfigError as e:
                _log("error", "Task registration failed", task_name=task_name, error=e.message)
                failures[task_name] = e
                continue
            if not already:
                registered.append(task_name)

        if failures:
            raise BulkRegistrationError(failures, registered)
        return registered

    def remove_task(self, task_name: str) -> bool:
        """Disarm and delete a task.

        A body already in flight runs to completion. Until it finishes, a task
        re-registered under the same name has its ticks skipped, so the name
        never runs twice at once.

        Returns:
            True if removed, False if not found
        """
        entry = self._tasks.pop(task_name, None)
        if entry is None:
            _log("warning", "Task not found for removal", task_name=task_name)
            _warn(f"Task {task_name} is not scheduled", LifecycleMisuseWarning)
            return False

        entry.timer.stop()
        remove = getattr(entry.timer, "remove", None)
        if callable(remove):
            remove()
        if entry.is_running:
            self._draining[task_name] = entry
        _log("info", "Removed task", task_name=task_name)
        return True

    # === Lifecycle ===

    def start(self) -> None:
        """Arm every registered task's timer."""
        if self._started:
            _log("warning", "TaskScheduler is already started")
            _warn("TaskScheduler is already started", LifecycleMisuseWarning)
            return

        _log("info", "Starting TaskScheduler", task_count=len(self._tasks))
        armed: list[ScheduledTaskEntry] = []
        for task_name, entry in self._tasks.items():
            try:
                entry.timer.start()
            except Exception as e:
                # All or nothing: disarm what was armed before re-raising.
                for done in armed:
                    done.timer.stop()
                _log("error", "Failed to arm task, start aborted", task_name=task_name, error=str(e))
                raise SchedulerError(
                    f"Failed to arm task: {task_name}",
                    context=ErrorContext(
                        task_name=task_name,
                        schedule_expression=entry.definition.schedule_expression,
                        timezone=self.timezone,
                    ),
                    cause=e,
                ) from e
            armed.append(entry)
            _log("info", "Started task", task_name=task_name)

        self._started = True
        _log("info", "TaskScheduler started successfully")

    def stop(self) -> None:
        """Disarm every timer. Running task bodies finish on their own."""
        if not self._started:
            _log("warning", "TaskScheduler is not started")
            _warn("TaskScheduler is not started", LifecycleMisuseWarning)
            return

        _log("info", "Stopping TaskScheduler")
        for task_name, entry in self._tasks.items():
            entry.timer.stop()
            _log("info", "Stopped task", task_name=task_name)

        self._started = False
        _log("info", "TaskScheduler stopped successfully")

    def shutdown(self, wait: bool = True) -> None:
        """Stop (if started) and release the timer engine."""
        if self._started:
            self.stop()
        self.engine.close(wait=wait)

    def __enter__(self) -> TaskScheduler:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.shutdown()

    @property
    def is_started(self) -> bool:
        return self._started

    # === Execution ===

    def _make_tick(self, task_name: str) -> TickCallback:
        async def _tick() -> None:
            await self._execute(task_name)

        return _tick

    async def _execute(self, task_name: str) -> bool:
        """Run one guarded execution of *task_name*.

        Returns:
            True if the task body ran, False if the tick was dropped
        """
        entry = self._tasks.get(task_name)
        if entry is None:
            _log("error", "Task info not found", task_name=task_name)
            return False

        draining = self._draining.get(task_name)
        if draining is not None and draining is not entry and draining.is_running:
            entry.record_skip()
            _log(
                "warning",
                "Task is already running, skipping execution",
                task_name=task_name,
                reason="removed instance still running",
            )
            return False

        if not entry.begin_run():
            _log("warning", "Task is already running, skipping execution", task_name=task_name)
            return False

        error: BaseException | None = None
        try:
            with LogContext(task_name=task_name):
                _log("info", "Executing task")
                result = entry.definition.task_function()
                if inspect.isawaitable(result):
                    await result
        except asyncio.CancelledError as e:
            error = e
            _log("warning", "Task cancelled", task_name=task_name)
            raise
        except Exception as e:
            error = e
            failure = TaskExecutionError(
                f"Task failed: {task_name}",
                context=ErrorContext(
                    task_name=task_name,
                    schedule_expression=entry.definition.schedule_expression,
                ),
                cause=e,
            )
            _log("error", "Task failed", exc_info=e, **failure.to_dict())
        finally:
            duration_ms = entry.end_run(error)
            if self._draining.get(task_name) is entry:
                self._draining.pop(task_name, None)

        if error is None:
            _log("info", "Task completed successfully", task_name=task_name, duration_ms=round(duration_ms, 3))
        return True

    async def trigger(self, task_name: str) -> bool:
        """Run a task once, outside its schedule, through the overlap guard.

        Returns:
            True if the body ran (even if it failed), False if unknown or skipped
        """
        if task_name not in self._tasks:
            _log("warning", "Task not found for trigger", task_name=task_name)
            _warn(f"Task {task_name} is not scheduled", LifecycleMisuseWarning)
            return False
        return await self._execute(task_name)

    # === Introspection ===

    def get_status(self) -> SchedulerStatus:
        """Snapshot of the scheduler and every task."""
        entries = list(self._tasks.values())
        return SchedulerStatus(
            is_started=self._started,
            task_count=len(entries),
            tasks=tuple(entry.snapshot() for entry in entries),
        )

    def get_task_info(self, task_name: str) -> TaskInfo | None:
        entry = self._tasks.get(task_name)
        return entry.snapshot() if entry else None

    def get_scheduled_task_names(self) -> list[str]:
        return list(self._tasks)

    @staticmethod
    def validate_schedule_expression(expression: str) -> bool:
        """Check *expression* without registering anything."""
        return validate_schedule_expression(expression)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_name: object) -> bool:
        return task_name in self._tasks
