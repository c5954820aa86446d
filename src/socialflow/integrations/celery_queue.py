"""Job queue that hands jobs to Celery workers."""
from __future__ import annotations

from typing import Optional

import redis

from socialflow.jobs import Job, JobQueue
from socialflow.observability import get_logger

logger = get_logger(__name__)


class CeleryJobQueue(JobQueue):
    """
    Enqueue publishes an ``execute_job`` task; duplicate idempotency keys
    are collapsed with a Redis SET NX before publishing. Celery workers
    consume tasks themselves, so this queue cannot be dequeued.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        idempotency_ttl_s: int = 7 * 24 * 3600,
        prefix: str = "socialflow:jobs:key:",
    ):
        self.redis_client = redis_client
        self._ttl = idempotency_ttl_s
        self._prefix = prefix

    def enqueue(self, job: Job) -> bool:
        from socialflow.integrations.tasks import execute_job

        key = f"{self._prefix}{job.idempotency_key}"
        if not self.redis_client.set(key, "1", nx=True, ex=self._ttl):
            logger.info("Duplicate job ignored", extra={"job_key": job.idempotency_key})
            return False
        try:
            execute_job.apply_async(args=[job.model_dump(mode="json")])
        except Exception:
            # Release the key so the same job can be enqueued again
            self.redis_client.delete(key)
            raise
        logger.info(
            "Job task published",
            extra={"job_key": job.idempotency_key, "workflow_id": job.workflow_id},
        )
        return True

    def requeue(self, job: Job, delay_s: float) -> None:
        from socialflow.integrations.tasks import execute_job

        job = job.model_copy(update={"requeues": job.requeues + 1})
        execute_job.apply_async(args=[job.model_dump(mode="json")], countdown=delay_s)

    def dequeue(self, timeout: Optional[float] = None) -> Optional[Job]:
        raise NotImplementedError("Celery workers consume execute_job tasks directly")

    def __len__(self) -> int:
        return 0


__all__ = ["CeleryJobQueue"]
