"""
Scheduler - Fires due schedules by enqueueing jobs.

The scheduler never executes graphs. Each tick takes every due schedule,
enqueues a Job keyed by schedule id and fired instant, and advances the
schedule to the first cron instant strictly after now. Firings missed by
more than the misfire grace window are skipped, not caught up.
"""

from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from socialflow.config import Settings, get_settings
from socialflow.errors import ScheduleNotFoundError
from socialflow.jobs import Job, JobQueue, utc_now
from socialflow.observability import get_logger, with_trace_context

from .cron import next_fire_after, validate_cron
from .models import Schedule
from .registry import ScheduleRegistry

logger = get_logger(__name__)


class Scheduler:
    """
    Usage:
        scheduler = Scheduler(registry, queue)
        schedule = scheduler.create("wf-1", "0 9 * * MON", "UTC")
        scheduler.tick()
    """

    def __init__(
        self,
        registry: ScheduleRegistry,
        queue: JobQueue,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.registry = registry
        self.queue = queue
        self.settings = settings or get_settings()
        self._clock = clock

    # -- lifecycle --------------------------------------------------------

    def create(
        self,
        workflow_id: str,
        cron: str,
        timezone: str = "UTC",
        now: Optional[datetime] = None,
    ) -> Schedule:
        """
        Register a schedule.

        Raises:
            CronExpressionError: invalid expression or timezone
        """
        validate_cron(cron, timezone)
        now = now or self._clock()
        schedule = Schedule(
            schedule_id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            cron=cron,
            timezone=timezone,
            next_fire_at=next_fire_after(cron, now, timezone),
            created_at=now,
        )
        self.registry.save(schedule)
        logger.info(
            "Schedule created",
            extra=with_trace_context(
                workflow_id=workflow_id,
                schedule_id=schedule.schedule_id,
                next_fire_at=schedule.next_fire_at.isoformat(),
            ),
        )
        return schedule

    def get(self, schedule_id: str) -> Schedule:
        schedule = self.registry.get(schedule_id)
        if schedule is None:
            raise ScheduleNotFoundError(schedule_id)
        return schedule

    def pause(self, schedule_id: str) -> Schedule:
        """Stop future enqueues; next_fire_at stays frozen."""
        schedule = self.get(schedule_id).model_copy(update={"active": False})
        self.registry.save(schedule)
        logger.info("Schedule paused", extra=with_trace_context(schedule_id=schedule_id))
        return schedule

    def resume(self, schedule_id: str) -> Schedule:
        schedule = self.get(schedule_id).model_copy(update={"active": True})
        self.registry.save(schedule)
        logger.info("Schedule resumed", extra=with_trace_context(schedule_id=schedule_id))
        return schedule

    def cancel(self, schedule_id: str) -> None:
        """Remove the schedule. Already-enqueued jobs are unaffected."""
        if not self.registry.remove(schedule_id):
            raise ScheduleNotFoundError(schedule_id)
        logger.info("Schedule cancelled", extra=with_trace_context(schedule_id=schedule_id))

    # -- firing -----------------------------------------------------------

    def tick(self, now: Optional[datetime] = None) -> List[Job]:
        """
        Fire every due schedule.

        Returns:
            Jobs enqueued by this tick (duplicates excluded)
        """
        now = now or self._clock()
        grace = self.settings.scheduler_misfire_grace_s
        enqueued: List[Job] = []

        for schedule in self.registry.pop_due(now):
            instant = schedule.next_fire_at
            lateness = (now - instant).total_seconds()
            trace = with_trace_context(
                workflow_id=schedule.workflow_id,
                schedule_id=schedule.schedule_id,
                scheduled_for=instant.isoformat(),
            )

            fired = False
            if lateness > grace:
                logger.warning("Schedule firing missed", extra={**trace, "lateness_s": lateness})
            else:
                job = Job.for_schedule(schedule.workflow_id, schedule.schedule_id, instant)
                try:
                    if self.queue.enqueue(job):
                        enqueued.append(job)
                except Exception:
                    # The same instant fires again on the next tick; the key dedupes it
                    logger.exception("Enqueue failed", extra=trace)
                    self._restore(schedule, schedule)
                    continue
                fired = True
                logger.info("Schedule fired", extra={**trace, "job_key": job.idempotency_key})

            advanced = schedule.model_copy(update={
                "next_fire_at": next_fire_after(schedule.cron, now, schedule.timezone),
                "last_fired_at": instant if fired else schedule.last_fired_at,
            })
            self._restore(schedule, advanced)

        return enqueued

    def _restore(self, popped: Schedule, updated: Schedule) -> None:
        current = self.registry.get(popped.schedule_id)
        if current is None:
            return
        if not current.active:
            # Paused while firing: keep the freeze, record the firing
            updated = current.model_copy(update={"last_fired_at": updated.last_fired_at})
        self.registry.save(updated)

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Tick every ``scheduler_tick_interval_s`` until ``stop_event`` is set."""
        stop_event = stop_event or threading.Event()
        interval = self.settings.scheduler_tick_interval_s
        logger.info("Scheduler started", extra={"tick_interval_s": interval})
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(interval)
        logger.info("Scheduler stopped")


__all__ = ["Scheduler"]
