"""Execution records."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Execution status. Exactly these four values."""

    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class NodeStatus(str, Enum):
    """Terminal node status. Exactly these three values."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class NodeError(BaseModel):
    """User-visible failure detail."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Error message")
    actionable: Optional[str] = Field(
        default=None,
        description="What the user can do about it, e.g. reconnect an account",
    )


class NodeResult(BaseModel):
    """Outcome of one node. Carries a digest of the output, never the payload."""

    node_id: str = Field(..., description="Node ID")
    node_type: str = Field(..., description="Node type tag")
    status: NodeStatus = Field(..., description="Terminal status")
    output_ref: Optional[str] = Field(default=None, description="Content digest of the output")
    error: Optional[NodeError] = Field(default=None, description="Failure detail")
    skip_reason: Optional[str] = Field(default=None, description="Why the node did not run")
    degraded: bool = Field(default=False, description="Output came from a fallback policy")
    fallback: Optional[str] = Field(default=None, description="Fallback policy applied")
    attempts: int = Field(default=1, description="External call attempts")
    started_at: Optional[str] = Field(default=None, description="ISO timestamp")
    completed_at: Optional[str] = Field(default=None, description="ISO timestamp")
    duration_ms: float = Field(default=0, description="Wall time")


class Execution(BaseModel):
    """One run of a workflow. Immutable once ``completed_at`` is set."""

    execution_id: str = Field(..., description="Unique execution ID")
    workflow_id: str = Field(..., description="Workflow ID")
    workflow_version: Optional[int] = Field(default=None, description="Graph version executed")
    idempotency_key: str = Field(..., description="Key of the job that produced this execution")
    status: ExecutionStatus = Field(default=ExecutionStatus.RUNNING)
    started_at: str = Field(..., description="ISO timestamp when the job was claimed")
    completed_at: Optional[str] = Field(default=None, description="ISO timestamp when finalized")
    node_results: List[NodeResult] = Field(default_factory=list)
    errors: List[NodeError] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def result_for(self, node_id: str) -> Optional[NodeResult]:
        for result in self.node_results:
            if result.node_id == node_id:
                return result
        return None


class LockClaim(BaseModel):
    """Outcome of an attempt to take a workflow's execution lock."""

    acquired: bool
    holder: Optional[str] = Field(default=None, description="Execution ID holding the lock")
    reclaimed_from: Optional[str] = Field(
        default=None,
        description="Execution ID whose stale lock was taken over",
    )


__all__ = [
    "ExecutionStatus",
    "NodeStatus",
    "NodeError",
    "NodeResult",
    "Execution",
    "LockClaim",
]
