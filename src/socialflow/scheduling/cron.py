"""Cron evaluation in a schedule's timezone."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from socialflow.errors import CronExpressionError


def parse_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise CronExpressionError(f"Unknown timezone: {name!r}") from e


def validate_cron(expression: str, tz: str = "UTC") -> None:
    """Raise CronExpressionError for a bad expression or timezone."""
    parse_timezone(tz)
    if not croniter.is_valid(expression):
        raise CronExpressionError(f"Invalid cron expression: {expression!r}")


def next_fire_after(expression: str, after: datetime, tz: str = "UTC") -> datetime:
    """
    First instant matching ``expression`` strictly after ``after``.

    The expression is evaluated in ``tz``; the result is returned in UTC.
    """
    validate_cron(expression, tz)
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    local = after.astimezone(parse_timezone(tz))
    fire = croniter(expression, local).get_next(datetime)
    return fire.astimezone(timezone.utc)


def upcoming(expression: str, start: datetime, count: int, tz: str = "UTC") -> List[datetime]:
    """The next ``count`` firing instants after ``start``."""
    instants = []
    current = start
    for _ in range(count):
        current = next_fire_after(expression, current, tz)
        instants.append(current)
    return instants


__all__ = ["parse_timezone", "validate_cron", "next_fire_after", "upcoming"]
