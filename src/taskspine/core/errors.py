"""
Structured error types for taskspine.

Provides a small hierarchy of typed errors carrying a category, structured
context and an optional chained cause, plus the warning categories emitted
for non-fatal misuse of the scheduler.

Manifesto:
    - **Typed Error Hierarchy:** Configuration problems and task failures
      are different things and are raised (or contained) differently
    - **Rich Context:** Errors carry the task name, schedule expression and
      time zone they relate to, ready for structured logging
    - **Error Chaining:** The original exception is preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                     TaskSpineError                           │
        │            (category, context, cause)                        │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigError (CONFIG)          SchedulerError (ORCHESTRATION)│
        │       │                              │                       │
        │  InvalidConfigError            TaskExecutionError            │
        │  ScheduleConfigError           TaskNotFoundError             │
        │       │                                                      │
        │  BulkRegistrationError                                       │
        └─────────────────────────────────────────────────────────────┘

        Warnings (non-fatal, logged and emitted via warnings.warn):
            DuplicateRegistrationWarning, LifecycleMisuseWarning

Propagation policy:
    Only configuration errors reach callers. ``TaskExecutionError`` is built
    inside the execution wrapper for logging and status, and is never raised
    into the timer engine.

Examples:
    >>> error = ScheduleConfigError("Invalid schedule expression")
    >>> error.with_context(task_name="hello", schedule_expression="nope")
    ScheduleConfigError('Invalid schedule expression', category=CONFIG)
    >>> error.to_dict()["context"]["task_name"]
    'hello'

Tags:
    error-handling, exception-hierarchy, error-context, taskspine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"  # Invalid schedule, time zone, settings
    ORCHESTRATION = "ORCHESTRATION"  # Scheduler and task execution
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        task_name: Registry name of the task involved
        schedule_expression: Cron expression involved
        timezone: Time zone the expression is evaluated in
        metadata: Any additional key/value pairs
    """

    task_name: str | None = None
    schedule_expression: str | None = None
    timezone: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize non-empty fields for logging."""
        result: dict[str, Any] = {}
        if self.task_name is not None:
            result["task_name"] = self.task_name
        if self.schedule_expression is not None:
            result["schedule_expression"] = self.schedule_expression
        if self.timezone is not None:
            result["timezone"] = self.timezone
        result.update(self.metadata)
        return result


class TaskSpineError(Exception):
    """
    Base exception for all taskspine errors.

    Subclasses set ``default_category`` to classify themselves.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TaskSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ScheduleConfigError("Invalid").with_context(task_name="hello")
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(TaskSpineError):
    """
    Configuration error.

    Never retried - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


class ScheduleConfigError(ConfigError):
    """A task's schedule expression failed validation at registration."""

    pass


class BulkRegistrationError(ScheduleConfigError):
    """One or more entries of a bulk registration failed.

    The entries that could be registered were registered; ``failures`` maps
    each rejected task name to the error raised for it.
    """

    def __init__(
        self,
        failures: dict[str, TaskSpineError],
        registered: list[str] | None = None,
    ):
        self.failures = dict(failures)
        self.registered = list(registered or [])
        names = ", ".join(sorted(self.failures))
        first = next(iter(self.failures.values()), None)
        super().__init__(
            f"{len(self.failures)} task(s) failed to register: {names}",
            cause=first,
        )
        self.context.metadata["failed_tasks"] = sorted(self.failures)
        self.context.metadata["registered_tasks"] = list(self.registered)


# =============================================================================
# SCHEDULER ERRORS
# =============================================================================


class SchedulerError(TaskSpineError):
    """Scheduler or task execution error."""

    default_category = ErrorCategory.ORCHESTRATION


class TaskExecutionError(SchedulerError):
    """A task body failed during a tick. Contained by the execution wrapper."""

    pass


class TaskNotFoundError(SchedulerError):
    """Task name is not present in the registry or catalog."""

    def __init__(self, name: str):
        self.task_name = name
        super().__init__(f"Task not found: {name}", context=ErrorContext(task_name=name))


# =============================================================================
# WARNINGS
# =============================================================================


class DuplicateRegistrationWarning(UserWarning):
    """A task name was registered twice; the second call was ignored."""


class LifecycleMisuseWarning(UserWarning):
    """start/stop/remove called in a state where it has no effect."""


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TaskSpineError",
    "ConfigError",
    "InvalidConfigError",
    "ScheduleConfigError",
    "BulkRegistrationError",
    "SchedulerError",
    "TaskExecutionError",
    "TaskNotFoundError",
    "DuplicateRegistrationWarning",
    "LifecycleMisuseWarning",
]
