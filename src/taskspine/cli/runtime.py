"""
Blocking scheduler runtime used by ``taskspine dev`` and ``taskspine start``.

Builds a ``TaskScheduler`` on the APScheduler engine, registers the requested
tasks, starts it, and then waits: every ``status_interval`` seconds the
scheduler status is logged. SIGINT / SIGTERM stop the scheduler and end the
wait; the engine is shut down on the way out.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Mapping
from types import FrameType

from taskspine.core.logging import get_logger
from taskspine.core.scheduling import APSchedulerEngine, TaskDefinition, TaskScheduler
from taskspine.core.scheduling.protocol import TimerEngine
from taskspine.core.settings import TaskSpineSettings

logger = get_logger(__name__)


def build_scheduler(settings: TaskSpineSettings, engine: TimerEngine | None = None) -> TaskScheduler:
    """Create a scheduler configured from *settings*."""
    engine = engine or APSchedulerEngine(
        max_instances=settings.max_job_instances,
        misfire_grace_seconds=settings.misfire_grace_seconds,
    )
    return TaskScheduler(engine, timezone=settings.timezone)


class SchedulerRunner:
    """Run a scheduler in the foreground until a signal or ``request_stop``."""

    def __init__(
        self,
        scheduler: TaskScheduler,
        tasks: Mapping[str, TaskDefinition],
        *,
        status_interval: float,
    ) -> None:
        self.scheduler = scheduler
        self.tasks = dict(tasks)
        self.status_interval = status_interval
        self._shutdown = threading.Event()

    def run(self) -> None:
        """Register, start and block. Always shuts the scheduler down."""
        try:
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)
        except (ValueError, OSError):
            pass  # Not in main thread, skip signal registration

        try:
            self.scheduler.register_bulk(self.tasks)
            self.scheduler.start()
            logger.info("Scheduler is running. Press Ctrl+C to stop.", tasks=list(self.tasks))
            while not self._shutdown.wait(self.status_interval):
                self.log_status()
        finally:
            self.scheduler.shutdown(wait=True)
            logger.info("Scheduler shut down")

    def log_status(self) -> None:
        logger.info("Scheduler status", **self.scheduler.get_status().to_dict())

    def request_stop(self) -> None:
        self._shutdown.set()

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received signal, shutting down gracefully...", signal=signal.Signals(signum).name)
        if self.scheduler.is_started:
            self.scheduler.stop()
        self.request_stop()
