"""Cron expression validation and evaluation.

Schedule expressions use the standard 5-field grammar::

    ┌──────── minute        (0-59)
    │ ┌────── hour          (0-23)
    │ │ ┌──── day of month  (1-31)
    │ │ │ ┌── month         (1-12 or jan-dec)
    │ │ │ │ ┌ day of week   (0-7 or sun-sat, 0 and 7 are Sunday)
    * * * * *

Each field supports ``*``, ranges (``1-5``), lists (``1,15``) and steps
(``*/10``, ``0-30/5``). A sixth *leading* field is accepted as seconds
(``*/30 * * * * *``). Macros such as ``@daily`` and the Quartz extensions
``?`` and ``#`` are rejected. So are day/month combinations that
never occur, such as ``0 0 31 2 *``.

Parsing and next-fire computation are delegated to croniter. croniter puts
an optional seconds field *last*, so six-field expressions are rotated
before they reach it.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from croniter import CroniterError, croniter

_FIELD_RE = re.compile(r"^[0-9A-Za-z*,/\-]+$")


def split_fields(expression: str) -> list[str] | None:
    """Split *expression* into 5 or 6 fields, or ``None`` if malformed."""
    if not isinstance(expression, str):
        return None
    fields = expression.split()
    if len(fields) not in (5, 6):
        return None
    if not all(_FIELD_RE.match(f) for f in fields):
        return None
    return fields


def to_croniter_expression(expression: str) -> str:
    """Rewrite *expression* in the field order croniter expects.

    Raises:
        ValueError: If the expression has the wrong shape.
    """
    fields = split_fields(expression)
    if fields is None:
        raise ValueError(f"Malformed schedule expression: {expression!r}")
    if len(fields) == 6:
        fields = fields[1:] + fields[:1]
    return " ".join(fields)


def validate_schedule_expression(expression: str) -> bool:
    """Return ``True`` if *expression* is a valid schedule expression.

    Example:
        >>> validate_schedule_expression("* * * * *")
        True
        >>> validate_schedule_expression("not-a-cron")
        False
    """
    try:
        normalized = to_croniter_expression(expression)
    except ValueError:
        return False
    if not croniter.is_valid(normalized):
        return False
    # Syntactically valid but unsatisfiable (e.g. Feb 31) never fires.
    try:
        croniter(normalized, datetime.now(UTC)).get_next(datetime)
    except CroniterError:
        return False
    return True


def next_fire_time(
    expression: str,
    timezone: str | ZoneInfo = "UTC",
    after: datetime | None = None,
) -> datetime:
    """Compute the first tick strictly after *after* (default: now).

    The expression is evaluated in wall-clock time of *timezone*; the result
    is an aware datetime in that zone.
    """
    tz = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
    start = after or datetime.now(UTC)
    if start.tzinfo is None:
        start = start.replace(tzinfo=UTC)

    itr = croniter(to_croniter_expression(expression), start.astimezone(tz))
    return itr.get_next(datetime)


def next_fire_times(
    expression: str,
    timezone: str | ZoneInfo = "UTC",
    count: int = 5,
    after: datetime | None = None,
) -> list[datetime]:
    """Compute the next *count* ticks after *after*."""
    times: list[datetime] = []
    cursor = after
    for _ in range(max(0, count)):
        cursor = next_fire_time(expression, timezone, cursor)
        times.append(cursor)
    return times


__all__ = [
    "split_fields",
    "to_croniter_expression",
    "validate_schedule_expression",
    "next_fire_time",
    "next_fire_times",
]
