"""Scheduler package for taskspine.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TASKSPINE SCHEDULER - recurring tasks with an overlap guard                  │
│                                                                               │
│   from taskspine.core.scheduling import (                                    │
│       APSchedulerEngine,                                                     │
│       TaskDefinition,                                                        │
│       TaskScheduler,                                                         │
│   )                                                                          │
│                                                                               │
│   scheduler = TaskScheduler(APSchedulerEngine(), timezone="America/Chicago") │
│   scheduler.register("hello", TaskDefinition(                                │
│       name="Hello Task",                                                     │
│       description="Logs 'Hi' every minute",                                 │
│       schedule_expression="* * * * *",                                       │
│       task_function=hello,                                                   │
│   ))                                                                         │
│   scheduler.start()                                                          │
│                                                                               │
│  Dependencies:                                                                │
│  - croniter: cron expression parsing                                         │
│  - apscheduler: timer engine (BackgroundScheduler)                           │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from .apscheduler_engine import APSchedulerEngine, APSchedulerTimer, CronExpressionTrigger
from .cron import next_fire_time, next_fire_times, validate_schedule_expression
from .models import (
    ScheduledTaskEntry,
    SchedulerStatus,
    TaskDefinition,
    TaskFunction,
    TaskInfo,
)
from .protocol import TickCallback, TimerEngine, TimerHandle
from .service import TaskScheduler

__all__ = [
    # Service
    "TaskScheduler",
    # Models
    "TaskDefinition",
    "TaskFunction",
    "TaskInfo",
    "SchedulerStatus",
    "ScheduledTaskEntry",
    # Engine
    "TimerEngine",
    "TimerHandle",
    "TickCallback",
    "APSchedulerEngine",
    "APSchedulerTimer",
    "CronExpressionTrigger",
    # Cron
    "validate_schedule_expression",
    "next_fire_time",
    "next_fire_times",
]
