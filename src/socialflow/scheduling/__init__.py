"""Cron scheduling: schedules, registry and the tick loop."""
from socialflow.scheduling.cron import next_fire_after, parse_timezone, upcoming, validate_cron
from socialflow.scheduling.models import Schedule
from socialflow.scheduling.registry import InMemoryScheduleRegistry, RedisScheduleRegistry, ScheduleRegistry
from socialflow.scheduling.scheduler import Scheduler

__all__ = [
    "Schedule",
    "ScheduleRegistry",
    "InMemoryScheduleRegistry",
    "RedisScheduleRegistry",
    "Scheduler",
    "next_fire_after",
    "parse_timezone",
    "upcoming",
    "validate_cron",
]
