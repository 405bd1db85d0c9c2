"""APScheduler-based timer engine.

Wraps APScheduler 3.x ``BackgroundScheduler`` to provide the
``TimerEngine`` protocol. Every registered task becomes one APScheduler job;
the job is added *paused* and is resumed/paused by its ``TimerHandle``.

Tick times come from a croniter-backed trigger so the exact grammar that
passed validation is the one that fires (APScheduler's own ``CronTrigger``
numbers weekdays from Monday, not Sunday).

APScheduler allows ``max_instances`` concurrent runs per job. It is set
above one so a tick arriving while the previous run is still busy reaches
the scheduler's overlap guard, which records and logs the skip.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger

from .cron import next_fire_time, validate_schedule_expression
from .protocol import TickCallback

logger = logging.getLogger(__name__)


class CronExpressionTrigger(BaseTrigger):
    """APScheduler trigger evaluating a cron expression with croniter."""

    __slots__ = ("expression", "timezone")

    def __init__(self, expression: str, timezone: str | tzinfo):
        self.expression = expression
        self.timezone = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

    def get_next_fire_time(
        self,
        previous_fire_time: datetime | None,
        now: datetime,
    ) -> datetime | None:
        start = previous_fire_time or now
        if previous_fire_time is not None and now > previous_fire_time:
            # Missed ticks are not replayed.
            start = now
        return next_fire_time(self.expression, self.timezone, start)

    def __getstate__(self) -> dict[str, Any]:
        return {"version": 1, "expression": self.expression, "timezone": str(self.timezone)}

    def __setstate__(self, state: dict[str, Any]) -> None:
        self.expression = state["expression"]
        self.timezone = ZoneInfo(state["timezone"])

    def __str__(self) -> str:
        return f"cron[{self.expression}]"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} (expression={self.expression!r}, timezone={str(self.timezone)!r})>"


class APSchedulerTimer:
    """``TimerHandle`` for one APScheduler job."""

    def __init__(self, engine: APSchedulerEngine, job: Job) -> None:
        self._engine = engine
        self._job = job
        self._armed = False

    @property
    def job_id(self) -> str:
        return self._job.id

    @property
    def is_armed(self) -> bool:
        return self._armed

    def start(self) -> None:
        self._engine._ensure_running()
        self._job.resume()
        self._armed = True
        logger.debug("Timer armed: %s", self.job_id)

    def stop(self) -> None:
        if not self._armed:
            return
        self._job.pause()
        self._armed = False
        logger.debug("Timer disarmed: %s", self.job_id)

    def remove(self) -> None:
        """Delete the underlying job. Used when a task leaves the registry."""
        self._armed = False
        self._engine._remove_job(self.job_id)

    def next_fire_time(self) -> datetime | None:
        if not self._armed:
            return None
        return getattr(self._job, "next_run_time", None)


class APSchedulerEngine:
    """APScheduler-based timer engine.

    Example::

        >>> engine = APSchedulerEngine()
        >>> handle = engine.schedule("*/5 * * * *", tick, timezone="UTC", name="sync")
        >>> handle.start()
        >>> # … later …
        >>> engine.close()
    """

    name: str = "apscheduler"

    def __init__(
        self,
        *,
        max_instances: int = 4,
        misfire_grace_seconds: int = 60,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self._scheduler = scheduler or BackgroundScheduler()
        self._max_instances = max_instances
        self._misfire_grace_seconds = misfire_grace_seconds

    # ------------------------------------------------------------------
    # TimerEngine protocol
    # ------------------------------------------------------------------

    def validate(self, expression: str) -> bool:
        return validate_schedule_expression(expression)

    def schedule(
        self,
        expression: str,
        callback: TickCallback,
        *,
        timezone: str,
        name: str,
    ) -> APSchedulerTimer:
        """Add a paused job for *expression* and return its handle."""

        def _tick_wrapper() -> None:
            try:
                asyncio.run(callback())
            except Exception:
                logger.exception("Tick callback failed for job %s", name)

        job = self._scheduler.add_job(
            _tick_wrapper,
            CronExpressionTrigger(expression, timezone),
            id=name,
            name=name,
            next_run_time=None,  # paused until the handle is started
            max_instances=self._max_instances,
            coalesce=True,
            misfire_grace_time=self._misfire_grace_seconds,
            replace_existing=True,
        )
        logger.debug("Job created (paused): %s [%s] tz=%s", name, expression, timezone)
        return APSchedulerTimer(self, job)

    def close(self, wait: bool = True) -> None:
        """Shut the background scheduler down.

        With ``wait=True`` this blocks until running jobs have finished.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("APSchedulerEngine stopped")

    # ------------------------------------------------------------------
    # Internals / health
    # ------------------------------------------------------------------

    def _ensure_running(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("APSchedulerEngine started")

    def _remove_job(self, job_id: str) -> None:
        if self._scheduler.get_job(job_id) is not None:
            self._scheduler.remove_job(job_id)

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def health(self) -> dict[str, Any]:
        """Return engine health status."""
        running = self.running
        return {
            "healthy": running,
            "engine": self.name,
            "scheduled_jobs": len(self._scheduler.get_jobs()),
        }
