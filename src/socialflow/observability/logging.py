"""Structured JSON logging with execution trace context."""
import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from socialflow.config import get_settings

TRACE_FIELDS = ("execution_id", "workflow_id", "node_id", "job_key", "schedule_id")


class TraceContextFilter(logging.Filter):
    """Add trace context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add default trace context fields if not present."""
        for name in TRACE_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with standardized field names."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the log record."""
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for name in TRACE_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_record[name] = value
            else:
                log_record.pop(name, None)


def setup_logging() -> None:
    """Configure structured JSON logging for the application."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    handler.setFormatter(formatter)
    handler.addFilter(TraceContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)


class TraceLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges per-call extra with the adapter's own."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> logging.LoggerAdapter:
    """
    Get a logger with trace context support.

    Args:
        name: Logger name (typically __name__)

    Returns:
        LoggerAdapter that can accept trace context in extra dict
    """
    logger = logging.getLogger(name)
    return TraceLoggerAdapter(logger, extra={})


def with_trace_context(
    execution_id: str | None = None,
    workflow_id: str | None = None,
    node_id: str | None = None,
    job_key: str | None = None,
    schedule_id: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create an extra dict with trace context for logging.

    Args:
        execution_id: Execution ID
        workflow_id: Workflow ID
        node_id: Node ID
        job_key: Job idempotency key
        schedule_id: Schedule ID
        **kwargs: Additional context fields

    Returns:
        Dict to pass as extra parameter to logger methods
    """
    extra = kwargs.copy()
    if execution_id:
        extra["execution_id"] = execution_id
    if workflow_id:
        extra["workflow_id"] = workflow_id
    if node_id:
        extra["node_id"] = node_id
    if job_key:
        extra["job_key"] = job_key
    if schedule_id:
        extra["schedule_id"] = schedule_id
    return extra
