"""
Shared pytest fixtures for taskspine tests.

This module provides:
- Logging/settings isolation between tests
- A manual timer engine and a scheduler built on it
- Task definition factories
"""

from __future__ import annotations

from collections.abc import Callable

import pytest
import structlog

from _support.fakes import ManualEngine
from taskspine.core.scheduling import TaskDefinition, TaskScheduler
from taskspine.core.settings import clear_settings_cache


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep host configuration and global logging state out of tests."""
    monkeypatch.delenv("TZ", raising=False)
    for var in ("TASKSPINE_TIMEZONE", "TASKSPINE_LOG_LEVEL", "TASKSPINE_LOG_FORMAT"):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    structlog.reset_defaults()
    yield
    clear_settings_cache()
    structlog.reset_defaults()


@pytest.fixture
def engine() -> ManualEngine:
    return ManualEngine()


@pytest.fixture
def scheduler(engine: ManualEngine) -> TaskScheduler:
    """TaskScheduler on the manual engine, UTC."""
    return TaskScheduler(engine, timezone="UTC")


@pytest.fixture
def make_task() -> Callable[..., TaskDefinition]:
    """Factory for task definitions with a no-op body by default."""

    async def _noop() -> None:
        return None

    def _make(
        expression: str = "* * * * *",
        func=None,
        *,
        name: str = "Test Task",
        description: str = "test task",
    ) -> TaskDefinition:
        return TaskDefinition(
            name=name,
            description=description,
            schedule_expression=expression,
            task_function=func or _noop,
        )

    return _make
