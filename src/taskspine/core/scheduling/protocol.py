"""Timer engine protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TIMER ENGINE PROTOCOL                                                        │
│                                                                               │
│  The engine controls WHEN a task's tick fires; TaskScheduler controls WHAT   │
│  happens on each tick (overlap guard, status, error containment).           │
│                                                                               │
│   ┌─────────────────┐  schedule(expr, cb)  ┌─────────────────┐               │
│   │  TaskScheduler  │ ───────────────────► │  TimerEngine    │               │
│   │                 │ ◄─────────────────── │  (APScheduler)  │               │
│   │                 │     TimerHandle      └────────┬────────┘               │
│   │                 │                               │ tick                   │
│   │  _execute(name) │ ◄─────────────────────────────┘                        │
│   └─────────────────┘                                                        │
│                                                                               │
│  One handle per registered task. Handles are created disarmed; start()     │
│  arms, stop() disarms. Disarming never interrupts a running callback.       │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class TimerHandle(Protocol):
    """A single task's timer, bound to one schedule expression."""

    def start(self) -> None:
        """Arm the timer so future matching ticks invoke the callback."""
        ...

    def stop(self) -> None:
        """Disarm the timer. An in-flight callback runs to completion."""
        ...

    def next_fire_time(self) -> datetime | None:
        """Next tick while armed, else ``None``."""
        ...

    @property
    def is_armed(self) -> bool:
        ...


@runtime_checkable
class TimerEngine(Protocol):
    """Protocol for pluggable time-zone-aware cron timer engines.

    Implementations:
        - APSchedulerEngine: APScheduler 3.x ``BackgroundScheduler``

    Example (custom engine):
        >>> class MyEngine:
        ...     name = "custom"
        ...
        ...     def validate(self, expression):
        ...         return validate_schedule_expression(expression)
        ...
        ...     def schedule(self, expression, callback, *, timezone, name):
        ...         return MyHandle(expression, callback, timezone)
        ...
        ...     def close(self, wait=True):
        ...         pass
    """

    name: str

    def validate(self, expression: str) -> bool:
        """Return whether *expression* is a schedule this engine can run."""
        ...

    def schedule(
        self,
        expression: str,
        callback: TickCallback,
        *,
        timezone: str,
        name: str,
    ) -> TimerHandle:
        """Create a disarmed handle invoking *callback* on each tick.

        Args:
            expression: Validated cron expression.
            callback: Async function awaited on each tick.
            timezone: IANA zone the expression is evaluated in.
            name: Task name, used as the engine-side job id.
        """
        ...

    def close(self, wait: bool = True) -> None:
        """Release engine resources. Handles are unusable afterwards."""
        ...
