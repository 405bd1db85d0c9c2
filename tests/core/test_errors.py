"""Tests for taskspine.core.errors module."""

import pytest

from taskspine.core.errors import (
    BulkRegistrationError,
    ConfigError,
    DuplicateRegistrationWarning,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    LifecycleMisuseWarning,
    ScheduleConfigError,
    SchedulerError,
    TaskExecutionError,
    TaskNotFoundError,
    TaskSpineError,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_empty_context(self):
        ctx = ErrorContext()
        assert ctx.task_name is None
        assert ctx.metadata == {}
        assert ctx.to_dict() == {}

    def test_to_dict_skips_unset_fields(self):
        ctx = ErrorContext(task_name="hello", metadata={"attempt": 2})
        assert ctx.to_dict() == {"task_name": "hello", "attempt": 2}


class TestTaskSpineError:
    """Test base error behaviour."""

    def test_default_category(self):
        assert TaskSpineError("x").category == ErrorCategory.INTERNAL

    def test_category_override(self):
        err = TaskSpineError("x", category=ErrorCategory.UNKNOWN)
        assert err.category == ErrorCategory.UNKNOWN

    def test_cause_is_chained(self):
        original = ValueError("bad value")
        err = TaskSpineError("wrapped", cause=original)
        assert err.cause is original
        assert err.__cause__ is original
        assert err.to_dict()["cause"] == "ValueError: bad value"

    def test_with_context(self):
        err = ScheduleConfigError("Invalid").with_context(task_name="hello", attempt=3)
        assert err.context.task_name == "hello"
        assert err.context.metadata == {"attempt": 3}

    def test_to_dict(self):
        err = ScheduleConfigError(
            "Invalid schedule expression",
            context=ErrorContext(task_name="hello", schedule_expression="nope"),
        )
        assert err.to_dict() == {
            "error_type": "ScheduleConfigError",
            "message": "Invalid schedule expression",
            "category": "CONFIG",
            "context": {"task_name": "hello", "schedule_expression": "nope"},
        }

    def test_repr(self):
        assert repr(ScheduleConfigError("bad")) == "ScheduleConfigError('bad', category=CONFIG)"


class TestHierarchy:
    """Test error classification."""

    @pytest.mark.parametrize(
        "error_cls, category",
        [
            (ConfigError, ErrorCategory.CONFIG),
            (ScheduleConfigError, ErrorCategory.CONFIG),
            (SchedulerError, ErrorCategory.ORCHESTRATION),
            (TaskExecutionError, ErrorCategory.ORCHESTRATION),
        ],
    )
    def test_categories(self, error_cls, category):
        assert error_cls("x").category == category

    def test_invalid_config_error(self):
        err = InvalidConfigError("timezone", "Mars/Olympus")
        assert isinstance(err, ConfigError)
        assert err.key == "timezone"
        assert err.value == "Mars/Olympus"
        assert "Mars/Olympus" in err.message

    def test_task_not_found(self):
        err = TaskNotFoundError("nope")
        assert isinstance(err, SchedulerError)
        assert err.task_name == "nope"
        assert err.message == "Task not found: nope"
        assert err.context.task_name == "nope"

    def test_bulk_registration_error(self):
        first = ScheduleConfigError("bad a")
        err = BulkRegistrationError({"b": ScheduleConfigError("bad b"), "a": first}, ["c"])

        assert isinstance(err, ScheduleConfigError)
        assert err.message == "2 task(s) failed to register: a, b"
        assert err.registered == ["c"]
        assert err.context.metadata == {"failed_tasks": ["a", "b"], "registered_tasks": ["c"]}
        assert err.__cause__ is not None

    def test_warning_categories(self):
        assert issubclass(DuplicateRegistrationWarning, UserWarning)
        assert issubclass(LifecycleMisuseWarning, UserWarning)
