"""Exception taxonomy for the execution engine."""
from __future__ import annotations

from typing import Any, List, Optional


class SocialflowError(Exception):
    """Base class for engine errors."""

    pass


class StructuralError(SocialflowError):
    """Raised when a graph fails validation. Such a graph is never executed."""

    def __init__(self, issues: List[Any], message: Optional[str] = None):
        self.issues = list(issues)
        if message is None:
            summary = "; ".join(str(i) for i in self.issues[:5])
            message = f"Graph is invalid ({len(self.issues)} issue(s)): {summary}"
        super().__init__(message)


class WorkflowNotFoundError(SocialflowError):
    """Raised when no graph version exists for a workflow."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class ScheduleNotFoundError(SocialflowError):
    """Raised when a schedule id is unknown."""

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}")


class CronExpressionError(SocialflowError):
    """Raised for an unparseable cron expression or unknown timezone."""

    pass


class LockContentionError(SocialflowError):
    """The workflow is already executing. The job must be requeued, not dropped."""

    def __init__(self, workflow_id: str, holder: Optional[str] = None):
        self.workflow_id = workflow_id
        self.holder = holder
        super().__init__(f"Workflow {workflow_id} is locked by execution {holder}")


class NodeExecutionError(SocialflowError):
    """
    Base class for node-level failures.

    Captured by the coordinator as a failed NodeResult, never propagated.
    """

    code = "node_failed"

    def __init__(self, message: str, actionable: Optional[str] = None):
        self.actionable = actionable
        super().__init__(message)


class NodeTimeoutError(NodeExecutionError):
    """Per-node deadline exceeded."""

    code = "node_timeout"


class MalformedInputError(NodeExecutionError):
    """A node received inputs it cannot process."""

    code = "malformed_input"


class GenerationError(NodeExecutionError):
    """Content generation collaborator failed."""

    code = "generation_failed"


class ContentValidationError(NodeExecutionError):
    """Content cannot be made compliant with a platform's constraints."""

    code = "content_invalid"

    def __init__(self, issues: List[Any], message: Optional[str] = None):
        self.issues = list(issues)
        if message is None:
            message = "; ".join(str(i) for i in self.issues) or "Content is not publishable"
        super().__init__(message)


class PlatformError(NodeExecutionError):
    """Base class for platform publishing failures."""

    code = "platform_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        actionable: Optional[str] = None,
    ):
        self.status_code = status_code
        super().__init__(message, actionable=actionable)


class TransientPlatformError(PlatformError):
    """Rate limiting, 5xx or network failure. Retried with backoff."""

    code = "platform_transient"


class PermanentPlatformError(PlatformError):
    """Invalid token or rejected request. Never retried."""

    code = "platform_permanent"


class RetryExhaustedError(PlatformError):
    """Transient failures persisted past the retry ceiling."""

    code = "platform_retry_exhausted"

    def __init__(self, last_error: Exception, attempts: int):
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Gave up after {attempts} attempt(s): {last_error}",
            status_code=getattr(last_error, "status_code", None),
            actionable="The platform is unavailable; try again later",
        )


class ExecutionNotFoundError(SocialflowError):
    """Raised when an execution id is unknown."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class ExecutionFinalizedError(SocialflowError):
    """Raised on any attempt to change a completed execution."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} is complete and cannot be modified")


class TriggerNotFoundError(SocialflowError):
    """Raised when a webhook names a node that is not a webhook trigger."""

    def __init__(self, workflow_id: str, node_id: str):
        self.workflow_id = workflow_id
        self.node_id = node_id
        super().__init__(f"Workflow {workflow_id} has no webhook trigger {node_id}")
