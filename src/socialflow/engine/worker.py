"""
Worker - Drains the job queue with a pool of coordinator threads.

A job that hits a held lock is requeued with a delay, never dropped.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from socialflow.config import Settings, get_settings
from socialflow.errors import LockContentionError
from socialflow.jobs import JobQueue
from socialflow.observability import get_logger, with_trace_context
from socialflow.storage import Execution

from .coordinator import ExecutionCoordinator

logger = get_logger(__name__)


class Worker:
    """
    Usage:
        worker = Worker(queue, coordinator)
        worker.run_forever(stop_event)
    """

    def __init__(
        self,
        queue: JobQueue,
        coordinator: ExecutionCoordinator,
        settings: Optional[Settings] = None,
        concurrency: int = 1,
    ):
        self.queue = queue
        self.coordinator = coordinator
        self.settings = settings or get_settings()
        self.concurrency = concurrency

    def run_once(self, timeout: Optional[float] = 0) -> Optional[Execution]:
        """
        Process at most one job.

        Returns:
            The execution, or None when no job was ready or the job was requeued
        """
        job = self.queue.dequeue(timeout=timeout)
        if job is None:
            return None
        try:
            return self.coordinator.run(job)
        except LockContentionError:
            delay = self.settings.lock_requeue_delay_s
            logger.info(
                "Job requeued after lock contention",
                extra=with_trace_context(
                    workflow_id=job.workflow_id,
                    job_key=job.idempotency_key,
                    delay_s=delay,
                    requeues=job.requeues + 1,
                ),
            )
            self.queue.requeue(job, delay)
            return None

    def drain(self, timeout: Optional[float] = 0) -> int:
        """Process jobs until the queue has nothing ready. Returns the number processed."""
        processed = 0
        while True:
            before = len(self.queue)
            if before == 0:
                return processed
            execution = self.run_once(timeout=timeout)
            if execution is None and len(self.queue) >= before:
                return processed
            processed += 1

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            try:
                self.run_once(timeout=1.0)
            except Exception:
                logger.exception("Worker loop error")
                stop_event.wait(1.0)

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        stop_event = stop_event or threading.Event()
        logger.info("Worker started", extra={"concurrency": self.concurrency})
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="worker") as pool:
            for _ in range(self.concurrency):
                pool.submit(self._loop, stop_event)
        logger.info("Worker stopped")


__all__ = ["Worker"]
