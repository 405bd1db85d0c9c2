"""Scheduler data model.

``TaskDefinition`` is supplied by callers and never mutated.
``ScheduledTaskEntry`` is owned by ``TaskScheduler``; its run-state only
changes through ``begin_run``, ``end_run`` and ``record_skip``, each of which
holds the entry's lock for the duration of the transition. Snapshots
(``TaskInfo``) are taken under the same lock, so readers always see a
consistent ``is_running`` / ``last_run`` pair.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .protocol import TimerHandle

TaskFunction = Callable[[], Awaitable[None] | None]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """A named unit of recurring work.

    Attributes:
        name: Human-readable label
        description: Free text
        schedule_expression: Cron expression (see ``cron.py``)
        task_function: Zero-argument callable; coroutine functions are awaited
    """

    name: str
    description: str
    schedule_expression: str
    task_function: TaskFunction = field(repr=False, compare=False)


@dataclass(frozen=True, slots=True)
class TaskInfo:
    """Point-in-time view of one scheduled task."""

    name: str
    description: str
    schedule_expression: str
    is_running: bool
    last_run: datetime | None = None
    next_run: datetime | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skip_count: int = 0
    last_error: str | None = None
    last_duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "schedule_expression": self.schedule_expression,
            "is_running": self.is_running,
            "last_run": _iso(self.last_run),
            "next_run": _iso(self.next_run),
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skip_count": self.skip_count,
            "last_error": self.last_error,
            "last_duration_ms": self.last_duration_ms,
        }


@dataclass(frozen=True, slots=True)
class SchedulerStatus:
    """Snapshot returned by ``TaskScheduler.get_status()``."""

    is_started: bool
    task_count: int
    tasks: tuple[TaskInfo, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_started": self.is_started,
            "task_count": self.task_count,
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class ScheduledTaskEntry:
    """Registry record binding a task name to its definition, timer and run-state."""

    task_name: str
    definition: TaskDefinition
    timer: TimerHandle
    is_running: bool = False
    last_run: datetime | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skip_count: int = 0
    last_error: str | None = None
    last_duration_ms: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _started_at: float | None = field(default=None, repr=False, compare=False)

    @property
    def next_run(self) -> datetime | None:
        return self.timer.next_fire_time()

    # === Run-state transitions ===

    def begin_run(self) -> bool:
        """Atomically claim the entry for one execution.

        Returns:
            False if an execution is already in flight (nothing changed)
        """
        with self._lock:
            if self.is_running:
                self.skip_count += 1
                return False
            self.is_running = True
            self.last_run = datetime.now(UTC)
            self.run_count += 1
            self._started_at = time.perf_counter()
            return True

    def record_skip(self) -> None:
        """Count a tick dropped for a reason other than this entry's own run."""
        with self._lock:
            self.skip_count += 1

    def end_run(self, error: BaseException | None = None) -> float:
        """Release the entry after an execution and record its outcome.

        Returns:
            Duration of the execution in milliseconds
        """
        with self._lock:
            started = self._started_at if self._started_at is not None else time.perf_counter()
            duration_ms = (time.perf_counter() - started) * 1000
            if error is None:
                self.success_count += 1
            else:
                self.failure_count += 1
                self.last_error = f"{type(error).__name__}: {error}"
            self.last_duration_ms = duration_ms
            self._started_at = None
            self.is_running = False
            return duration_ms

    def snapshot(self) -> TaskInfo:
        with self._lock:
            return TaskInfo(
                name=self.task_name,
                description=self.definition.description,
                schedule_expression=self.definition.schedule_expression,
                is_running=self.is_running,
                last_run=self.last_run,
                next_run=self.next_run,
                run_count=self.run_count,
                success_count=self.success_count,
                failure_count=self.failure_count,
                skip_count=self.skip_count,
                last_error=self.last_error,
                last_duration_ms=self.last_duration_ms,
            )
