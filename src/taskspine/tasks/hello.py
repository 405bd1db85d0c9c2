"""Demo task: logs a greeting."""

from __future__ import annotations

from taskspine.core.logging import get_logger

logger = get_logger(__name__)


async def hello_task() -> None:
    """Log "Hi". Shows the minimal shape of a scheduled task."""
    logger.info("Hi")
