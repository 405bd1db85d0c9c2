"""Tests for guarded task execution: overlap skipping, failure containment, run-state."""

from __future__ import annotations

import asyncio
import threading

import pytest
from structlog.testing import capture_logs

from taskspine.core.errors import LifecycleMisuseWarning
from taskspine.core.scheduling import service as service_module


def _events(logs: list[dict], name: str) -> list[dict]:
    return [entry for entry in logs if entry["event"] == name]


class TestSuccessfulRun:
    """A tick that runs to completion."""

    @pytest.mark.asyncio
    async def test_tick_runs_body_and_updates_state(self, scheduler, engine, make_task):
        calls = []

        async def body():
            calls.append("ran")

        scheduler.register("A", make_task(func=body))
        scheduler.start()

        await engine.timers["A"].fire()

        info = scheduler.get_task_info("A")
        assert calls == ["ran"]
        assert info.is_running is False
        assert info.last_run is not None
        assert info.last_run.tzinfo is not None
        assert info.run_count == 1
        assert info.success_count == 1
        assert info.failure_count == 0
        assert info.last_duration_ms is not None

    @pytest.mark.asyncio
    async def test_sync_body_is_supported(self, scheduler, engine, make_task):
        calls = []
        scheduler.register("A", make_task(func=lambda: calls.append(1)))

        await engine.timers["A"].fire()

        assert calls == [1]
        assert scheduler.get_task_info("A").success_count == 1

    @pytest.mark.asyncio
    async def test_last_run_advances(self, scheduler, engine, make_task):
        scheduler.register("A", make_task())
        await engine.timers["A"].fire()
        first = scheduler.get_task_info("A").last_run
        await engine.timers["A"].fire()
        second = scheduler.get_task_info("A").last_run

        assert second >= first
        assert scheduler.get_task_info("A").run_count == 2

    @pytest.mark.asyncio
    async def test_success_is_logged(self, scheduler, engine, make_task):
        scheduler.register("A", make_task())
        with capture_logs() as logs:
            await engine.timers["A"].fire()

        executing = _events(logs, "Executing task")
        assert len(executing) == 1
        done = _events(logs, "Task completed successfully")
        assert len(done) == 1
        assert done[0]["task_name"] == "A"
        assert "duration_ms" in done[0]


class TestOverlapGuard:
    """A tick arriving while the previous run is in flight is skipped."""

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, scheduler, engine, make_task):
        release = asyncio.Event()
        entered = asyncio.Event()
        calls = 0

        async def slow():
            nonlocal calls
            calls += 1
            entered.set()
            await release.wait()

        scheduler.register("A", make_task(func=slow))
        scheduler.start()

        first = asyncio.create_task(engine.timers["A"].fire())
        await entered.wait()
        assert scheduler.get_task_info("A").is_running is True

        with capture_logs() as logs:
            await engine.timers["A"].fire()

        assert calls == 1
        skipped = _events(logs, "Task is already running, skipping execution")
        assert len(skipped) == 1
        assert skipped[0]["task_name"] == "A"
        assert skipped[0]["log_level"] == "warning"

        release.set()
        await first

        info = scheduler.get_task_info("A")
        assert info.is_running is False
        assert info.run_count == 1
        assert info.skip_count == 1

    @pytest.mark.asyncio
    async def test_skip_does_not_touch_last_run(self, scheduler, engine, make_task):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def slow():
            entered.set()
            await release.wait()

        scheduler.register("A", make_task(func=slow))
        first = asyncio.create_task(engine.timers["A"].fire())
        await entered.wait()
        before = scheduler.get_task_info("A").last_run

        await engine.timers["A"].fire()

        assert scheduler.get_task_info("A").last_run == before
        release.set()
        await first

    @pytest.mark.asyncio
    async def test_guard_is_per_task(self, scheduler, engine, make_task):
        """A busy task does not block a different task."""
        release = asyncio.Event()
        entered = asyncio.Event()
        b_calls = []

        async def slow():
            entered.set()
            await release.wait()

        scheduler.register("A", make_task(func=slow))
        scheduler.register("B", make_task(func=lambda: b_calls.append(1)))

        first = asyncio.create_task(engine.timers["A"].fire())
        await entered.wait()
        await engine.timers["B"].fire()

        assert b_calls == [1]
        release.set()
        await first

    def test_concurrent_ticks_from_threads(self, scheduler, engine, make_task):
        """Two engine threads delivering ticks at once yield exactly one execution."""
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def blocking():
            calls.append(threading.get_ident())
            entered.set()
            release.wait(timeout=5)

        scheduler.register("A", make_task(func=blocking))
        timer = engine.timers["A"]

        first = threading.Thread(target=lambda: asyncio.run(timer.fire()))
        first.start()
        assert entered.wait(timeout=5)

        second = threading.Thread(target=lambda: asyncio.run(timer.fire()))
        second.start()
        second.join(timeout=5)

        release.set()
        first.join(timeout=5)

        info = scheduler.get_task_info("A")
        assert len(calls) == 1
        assert info.run_count == 1
        assert info.skip_count == 1
        assert info.is_running is False


class TestFailureContainment:
    """A failing task never escapes the execution wrapper."""

    @pytest.mark.asyncio
    async def test_failure_is_contained_and_logged(self, scheduler, engine, make_task):
        async def boom():
            raise RuntimeError("boom")

        scheduler.register("A", make_task(func=boom))
        scheduler.start()

        with capture_logs() as logs:
            await engine.timers["A"].fire()  # must not raise

        info = scheduler.get_task_info("A")
        assert info.is_running is False
        assert info.failure_count == 1
        assert info.success_count == 0
        assert info.last_error == "RuntimeError: boom"
        assert info.last_run is not None
        assert info.run_count == 1

        failed = _events(logs, "Task failed")
        assert len(failed) == 1
        assert failed[0]["log_level"] == "error"
        assert failed[0]["error_type"] == "TaskExecutionError"
        assert failed[0]["context"]["task_name"] == "A"
        assert failed[0]["cause"] == "RuntimeError: boom"
        assert _events(logs, "Task completed successfully") == []

    @pytest.mark.asyncio
    async def test_next_tick_runs_after_failure(self, scheduler, engine, make_task):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise ValueError("first time")

        scheduler.register("A", make_task(func=flaky))

        await engine.timers["A"].fire()
        await engine.timers["A"].fire()

        info = scheduler.get_task_info("A")
        assert len(attempts) == 2
        assert info.failure_count == 1
        assert info.success_count == 1

    @pytest.mark.asyncio
    async def test_other_tasks_unaffected(self, scheduler, engine, make_task):
        ran = []

        def boom():
            raise RuntimeError("boom")

        scheduler.register("bad", make_task(func=boom))
        scheduler.register("good", make_task(func=lambda: ran.append(1)))
        scheduler.start()

        await engine.timers["bad"].fire()
        await engine.timers["good"].fire()

        assert ran == [1]
        bad = scheduler.get_task_info("bad")
        assert bad.last_run is not None
        assert bad.failure_count == 1
        assert bad.is_running is False
        assert scheduler.is_started is True

    @pytest.mark.asyncio
    async def test_cancellation_clears_running_flag(self, scheduler, make_task):
        entered = asyncio.Event()

        async def forever():
            entered.set()
            await asyncio.Event().wait()

        scheduler.register("A", make_task(func=forever))
        task = asyncio.create_task(scheduler.trigger("A"))
        await entered.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        info = scheduler.get_task_info("A")
        assert info.is_running is False
        assert info.failure_count == 1
        assert info.last_error.startswith("CancelledError")


class TestStaleTicks:
    """Ticks that race with removal."""

    @pytest.mark.asyncio
    async def test_tick_after_removal_is_logged_and_dropped(self, scheduler, engine, make_task):
        calls = []
        scheduler.register("A", make_task(func=lambda: calls.append(1)))
        timer = engine.timers["A"]
        scheduler.remove_task("A")

        with capture_logs() as logs:
            await timer.fire()

        assert calls == []
        missing = _events(logs, "Task info not found")
        assert len(missing) == 1
        assert missing[0]["log_level"] == "error"
        assert missing[0]["task_name"] == "A"


class TestTrigger:
    """Manual one-off runs."""

    @pytest.mark.asyncio
    async def test_trigger_runs_through_guard(self, scheduler, make_task):
        calls = []
        scheduler.register("A", make_task(func=lambda: calls.append(1)))

        assert await scheduler.trigger("A") is True
        assert calls == [1]
        assert scheduler.get_task_info("A").run_count == 1

    @pytest.mark.asyncio
    async def test_trigger_failed_body_still_ran(self, scheduler, make_task):
        def boom():
            raise RuntimeError("boom")

        scheduler.register("A", make_task(func=boom))
        assert await scheduler.trigger("A") is True
        assert scheduler.get_task_info("A").failure_count == 1

    @pytest.mark.asyncio
    async def test_trigger_unknown(self, scheduler):
        with pytest.warns(LifecycleMisuseWarning):
            assert await scheduler.trigger("missing") is False


class TestBrokenLogger:
    """A failing log sink never interrupts scheduling."""

    class _ExplodingLogger:
        def __getattr__(self, name):
            def _raise(*args, **kwargs):
                raise OSError("log sink unavailable")

            return _raise

    @pytest.mark.asyncio
    async def test_operations_survive_logger_failure(self, scheduler, engine, make_task, monkeypatch):
        monkeypatch.setattr(service_module, "logger", self._ExplodingLogger())

        def boom():
            raise RuntimeError("boom")

        scheduler.register("A", make_task())
        scheduler.register("B", make_task(func=boom))
        scheduler.start()

        await engine.timers["A"].fire()
        await engine.timers["B"].fire()
        scheduler.stop()
        assert scheduler.remove_task("A") is True

        assert scheduler.get_task_info("B").failure_count == 1
        assert scheduler.get_task_info("B").is_running is False


class TestRemovedWhileRunning:
    """A name removed mid-run and registered again never runs twice at once."""

    @pytest.mark.asyncio
    async def test_reregistered_task_waits_for_removed_body(self, scheduler, engine, make_task):
        release = asyncio.Event()
        entered = asyncio.Event()
        old_calls = []
        new_calls = []

        async def old_body():
            old_calls.append(1)
            entered.set()
            await release.wait()

        scheduler.register("A", make_task(func=old_body))
        scheduler.start()
        first = asyncio.create_task(engine.timers["A"].fire())
        await entered.wait()

        assert scheduler.remove_task("A") is True
        scheduler.register("A", make_task(func=lambda: new_calls.append(1)))

        with capture_logs() as logs:
            await engine.timers["A"].fire()

        assert new_calls == []
        assert scheduler.get_task_info("A").skip_count == 1
        assert scheduler.get_task_info("A").run_count == 0
        skipped = _events(logs, "Task is already running, skipping execution")
        assert len(skipped) == 1

        release.set()
        await first
        await engine.timers["A"].fire()

        assert old_calls == [1]
        assert new_calls == [1]
        assert scheduler.get_task_info("A").success_count == 1

    @pytest.mark.asyncio
    async def test_idle_removal_does_not_block_reregistration(self, scheduler, engine, make_task):
        calls = []
        scheduler.register("A", make_task())
        scheduler.remove_task("A")
        scheduler.register("A", make_task(func=lambda: calls.append(1)))

        await engine.timers["A"].fire()

        assert calls == [1]
