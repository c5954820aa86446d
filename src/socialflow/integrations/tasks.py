"""Celery tasks for job execution and scheduler ticks."""
from socialflow.bootstrap import get_engine
from socialflow.errors import LockContentionError
from socialflow.integrations.celery_app import celery_app
from socialflow.jobs import Job
from socialflow.observability import get_logger, setup_logging, with_trace_context

# Setup logging
setup_logging()
logger = get_logger(__name__)


@celery_app.task(name="socialflow.execute_job", bind=True, max_retries=None)
def execute_job(self, job_data: dict) -> dict:
    """
    Run one job through the coordinator.

    Lock contention is retried after ``lock_requeue_delay_s``; the job is
    never dropped.

    Args:
        job_data: Serialized Job

    Returns:
        Execution summary
    """
    engine = get_engine()
    job = Job.model_validate(job_data)
    trace = with_trace_context(workflow_id=job.workflow_id, job_key=job.idempotency_key)

    try:
        execution = engine.coordinator.run(job)
    except LockContentionError as exc:
        logger.info("Workflow locked, task retry scheduled", extra=trace)
        raise self.retry(exc=exc, countdown=engine.settings.lock_requeue_delay_s)

    logger.info(
        "Job task finished",
        extra={**trace, "execution_id": execution.execution_id, "status": execution.status.value},
    )
    return {
        "execution_id": execution.execution_id,
        "workflow_id": execution.workflow_id,
        "status": execution.status.value,
    }


@celery_app.task(name="socialflow.scheduler_tick")
def scheduler_tick() -> dict:
    """Fire due schedules. Registered on beat at ``scheduler_tick_interval_s``."""
    jobs = get_engine().scheduler.tick()
    return {"enqueued": [job.idempotency_key for job in jobs]}
