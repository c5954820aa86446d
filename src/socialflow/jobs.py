"""
Jobs and the job queue.

A Job exists only between enqueue and dequeue. Its idempotency key is
derived from the schedule and fired instant, or from a nonce for manual
and webhook runs; the queue treats a repeated key as a no-op.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import redis
from pydantic import BaseModel, Field

from socialflow.observability import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TriggerPayload(BaseModel):
    """What started a job. Materialized by the matching trigger node."""

    kind: Literal["schedule", "manual", "webhook"]
    node_id: Optional[str] = Field(None, description="Trigger node the payload targets")
    data: Any = None
    scheduled_for: Optional[datetime] = None
    schedule_id: Optional[str] = None


class Job(BaseModel):
    """A request to execute a workflow once."""

    workflow_id: str
    idempotency_key: str
    trigger: Optional[TriggerPayload] = None
    enqueued_at: datetime = Field(default_factory=utc_now)
    requeues: int = 0

    @classmethod
    def for_schedule(cls, workflow_id: str, schedule_id: str, instant: datetime) -> "Job":
        instant = instant.astimezone(timezone.utc)
        return cls(
            workflow_id=workflow_id,
            idempotency_key=f"{schedule_id}:{instant.isoformat()}",
            trigger=TriggerPayload(kind="schedule", scheduled_for=instant, schedule_id=schedule_id),
        )

    @classmethod
    def manual(cls, workflow_id: str, data: Any = None, nonce: Optional[str] = None) -> "Job":
        return cls(
            workflow_id=workflow_id,
            idempotency_key=f"manual:{nonce or uuid.uuid4().hex}",
            trigger=TriggerPayload(kind="manual", data=data),
        )

    @classmethod
    def webhook(cls, workflow_id: str, node_id: str, payload: Any, nonce: Optional[str] = None) -> "Job":
        return cls(
            workflow_id=workflow_id,
            idempotency_key=f"webhook:{node_id}:{nonce or uuid.uuid4().hex}",
            trigger=TriggerPayload(kind="webhook", node_id=node_id, data=payload),
        )


class JobQueue(ABC):
    """Durable job queue with idempotent enqueue and delayed requeue."""

    @abstractmethod
    def enqueue(self, job: Job) -> bool:
        """
        Add a job unless its idempotency key was seen before.

        Returns:
            True if enqueued, False for a duplicate key
        """

    @abstractmethod
    def requeue(self, job: Job, delay_s: float) -> None:
        """Put a dequeued job back, available after ``delay_s``. Never deduplicated."""

    @abstractmethod
    def dequeue(self, timeout: Optional[float] = None) -> Optional[Job]:
        """Take the next ready job, waiting up to ``timeout`` seconds."""

    @abstractmethod
    def __len__(self) -> int:
        ...


class InMemoryJobQueue(JobQueue):
    """Process-local queue used by tests and single-process deployments."""

    def __init__(
        self,
        idempotency_ttl_s: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = idempotency_ttl_s
        self._clock = clock
        self._cond = threading.Condition()
        self._heap: List[Tuple[float, int, Job]] = []
        self._seq = itertools.count()
        self._seen: Dict[str, float] = {}

    def enqueue(self, job: Job) -> bool:
        with self._cond:
            now = self._clock()
            expires = self._seen.get(job.idempotency_key)
            if expires is not None and expires > now:
                logger.info("Duplicate job ignored", extra={"job_key": job.idempotency_key})
                return False
            self._seen = {k: t for k, t in self._seen.items() if t > now}
            self._seen[job.idempotency_key] = now + self._ttl
            heapq.heappush(self._heap, (now, next(self._seq), job))
            self._cond.notify()
        logger.info(
            "Job enqueued",
            extra={"job_key": job.idempotency_key, "workflow_id": job.workflow_id},
        )
        return True

    def requeue(self, job: Job, delay_s: float) -> None:
        job = job.model_copy(update={"requeues": job.requeues + 1})
        with self._cond:
            heapq.heappush(self._heap, (self._clock() + delay_s, next(self._seq), job))
            self._cond.notify()

    def dequeue(self, timeout: Optional[float] = None) -> Optional[Job]:
        end = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                now = self._clock()
                if self._heap and self._heap[0][0] <= now:
                    return heapq.heappop(self._heap)[2]
                waits = []
                if self._heap:
                    waits.append(self._heap[0][0] - now)
                if end is not None:
                    if now >= end:
                        return None
                    waits.append(end - now)
                self._cond.wait(min(waits) if waits else None)

    def __len__(self) -> int:
        with self._cond:
            return len(self._heap)


class RedisJobQueue(JobQueue):
    """
    Jobs in a sorted set scored by ready time; idempotency keys as
    SET NX entries with a TTL.

    ZREM decides ownership, so concurrent consumers never take the same job.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        idempotency_ttl_s: int = 7 * 24 * 3600,
        prefix: str = "socialflow:jobs",
        poll_interval_s: float = 0.5,
    ):
        self.redis_client = redis_client
        self._ttl = idempotency_ttl_s
        self._ready_key = f"{prefix}:ready"
        self._key_prefix = f"{prefix}:key:"
        self._poll = poll_interval_s

    def enqueue(self, job: Job) -> bool:
        key = f"{self._key_prefix}{job.idempotency_key}"
        if not self.redis_client.set(key, "1", nx=True, ex=self._ttl):
            logger.info("Duplicate job ignored", extra={"job_key": job.idempotency_key})
            return False
        try:
            self.redis_client.zadd(self._ready_key, {job.model_dump_json(): time.time()})
        except Exception:
            # Release the key so the same job can be enqueued again
            self.redis_client.delete(key)
            raise
        logger.info(
            "Job enqueued",
            extra={"job_key": job.idempotency_key, "workflow_id": job.workflow_id},
        )
        return True

    def requeue(self, job: Job, delay_s: float) -> None:
        job = job.model_copy(update={"requeues": job.requeues + 1})
        self.redis_client.zadd(self._ready_key, {job.model_dump_json(): time.time() + delay_s})

    def dequeue(self, timeout: Optional[float] = None) -> Optional[Job]:
        end = None if timeout is None else time.monotonic() + timeout
        while True:
            for raw in self.redis_client.zrangebyscore(self._ready_key, "-inf", time.time(), start=0, num=10):
                if self.redis_client.zrem(self._ready_key, raw):
                    return Job.model_validate_json(raw)
            if end is not None and time.monotonic() >= end:
                return None
            time.sleep(self._poll)

    def __len__(self) -> int:
        return int(self.redis_client.zcard(self._ready_key))


__all__ = [
    "Job",
    "TriggerPayload",
    "JobQueue",
    "InMemoryJobQueue",
    "RedisJobQueue",
    "utc_now",
]
