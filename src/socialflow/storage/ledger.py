"""
Execution Ledger - Append-only execution history and lock bookkeeping.

The ledger owns the per-workflow execution lock. Acquisition is a single
atomic claim-if-absent; a claim older than the staleness threshold is
reclaimable, which is how a crashed coordinator's lock is recovered.
"""

from __future__ import annotations

import threading
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from socialflow.errors import ExecutionFinalizedError, ExecutionNotFoundError
from socialflow.jobs import utc_now
from socialflow.observability import get_logger

from .models import Execution, ExecutionStatus, LockClaim, NodeError, NodeResult

logger = get_logger(__name__)

COORDINATOR_LOST = "coordinator_lost"


class ExecutionLedger(ABC):
    """Store of Executions, NodeResults, execution locks and job keys."""

    def __init__(self, stale_after_s: float = 900.0, clock: Callable[[], float] = time.time):
        self.stale_after_s = stale_after_s
        self._clock = clock

    # -- executions -------------------------------------------------------

    def start(
        self,
        workflow_id: str,
        idempotency_key: str,
        workflow_version: Optional[int] = None,
        execution_id: Optional[str] = None,
    ) -> Execution:
        """Create a running Execution."""
        execution = Execution(
            execution_id=execution_id or str(uuid.uuid4()),
            workflow_id=workflow_id,
            workflow_version=workflow_version,
            idempotency_key=idempotency_key,
            status=ExecutionStatus.RUNNING,
            started_at=utc_now().isoformat(),
        )
        self._insert(execution)
        logger.info(
            "Execution started",
            extra={
                "execution_id": execution.execution_id,
                "workflow_id": workflow_id,
                "job_key": idempotency_key,
            },
        )
        return execution

    def record_node_result(self, execution_id: str, result: NodeResult) -> Execution:
        """Append a NodeResult to a running Execution."""
        execution = self._require_running(execution_id)
        updated = execution.model_copy(update={"node_results": [*execution.node_results, result]})
        self._replace(updated)
        return updated

    def complete(
        self,
        execution_id: str,
        status: ExecutionStatus,
        errors: Optional[List[NodeError]] = None,
    ) -> Execution:
        """Finalize an Execution. After this it never changes."""
        if status == ExecutionStatus.RUNNING:
            raise ValueError("An execution cannot be completed as running")
        execution = self._require_running(execution_id)
        updated = execution.model_copy(update={
            "status": status,
            "completed_at": utc_now().isoformat(),
            "errors": [*execution.errors, *(errors or [])],
        })
        self._replace(updated)
        logger.info(
            "Execution finalized",
            extra={
                "execution_id": execution_id,
                "workflow_id": execution.workflow_id,
                "status": status.value,
            },
        )
        return updated

    def abandon(self, execution_id: str) -> Optional[Execution]:
        """Finalize an execution whose coordinator disappeared."""
        execution = self.get(execution_id)
        if execution is None or execution.is_complete:
            return execution
        return self.complete(
            execution_id,
            ExecutionStatus.FAILED,
            [NodeError(
                code=COORDINATOR_LOST,
                message="Execution was abandoned by its coordinator and its lock reclaimed",
            )],
        )

    def running(self, workflow_id: str) -> List[Execution]:
        return [e for e in self.history(workflow_id) if e.status == ExecutionStatus.RUNNING]

    def _require_running(self, execution_id: str) -> Execution:
        execution = self.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        if execution.is_complete:
            raise ExecutionFinalizedError(execution_id)
        return execution

    def _is_stale(self, acquired_at: float) -> bool:
        return self._clock() - acquired_at >= self.stale_after_s

    @abstractmethod
    def _insert(self, execution: Execution) -> None:
        ...

    @abstractmethod
    def _replace(self, execution: Execution) -> None:
        ...

    @abstractmethod
    def get(self, execution_id: str) -> Optional[Execution]:
        ...

    @abstractmethod
    def history(self, workflow_id: str, limit: Optional[int] = None) -> List[Execution]:
        """Executions of a workflow, newest first."""

    # -- locks ------------------------------------------------------------

    @abstractmethod
    def acquire_lock(self, workflow_id: str, holder: str) -> LockClaim:
        """Claim the workflow's lock for ``holder`` if absent or stale."""

    @abstractmethod
    def refresh_lock(self, workflow_id: str, holder: str) -> bool:
        """Reset the claim age. False when ``holder`` no longer holds the lock."""

    @abstractmethod
    def release_lock(self, workflow_id: str, holder: str) -> bool:
        """Clear the claim if ``holder`` still holds it."""

    # -- job idempotency --------------------------------------------------

    def claim_idempotency_key(self, key: str, execution_id: str) -> Optional[str]:
        """
        Bind a job key to an execution.

        A key bound to an execution that was never started (its coordinator
        died in between) is rebound.

        Returns:
            None if the key is now bound to ``execution_id``, otherwise the
            execution id it was already bound to
        """
        existing = self._claim_key(key, execution_id)
        if existing is None or existing == execution_id:
            return None
        if self.get(existing) is None:
            self._bind_key(key, execution_id)
            return None
        return existing

    @abstractmethod
    def _claim_key(self, key: str, execution_id: str) -> Optional[str]:
        """Bind if unbound; return the previously bound id otherwise."""

    @abstractmethod
    def _bind_key(self, key: str, execution_id: str) -> None:
        ...

    @abstractmethod
    def execution_id_for_key(self, key: str) -> Optional[str]:
        ...

    def execution_for_key(self, key: str) -> Optional[Execution]:
        execution_id = self.execution_id_for_key(key)
        return self.get(execution_id) if execution_id else None


@dataclass
class _Lock:
    holder: str
    acquired_at: float


class InMemoryExecutionLedger(ExecutionLedger):
    """Thread-safe in-process ledger."""

    def __init__(self, stale_after_s: float = 900.0, clock: Callable[[], float] = time.time):
        super().__init__(stale_after_s, clock)
        self._mutex = threading.RLock()
        self._executions: Dict[str, Execution] = {}
        self._by_workflow: Dict[str, List[str]] = {}
        self._locks: Dict[str, _Lock] = {}
        self._keys: Dict[str, str] = {}

    def _insert(self, execution: Execution) -> None:
        with self._mutex:
            self._executions[execution.execution_id] = execution
            self._by_workflow.setdefault(execution.workflow_id, []).append(execution.execution_id)

    def _replace(self, execution: Execution) -> None:
        with self._mutex:
            self._executions[execution.execution_id] = execution

    def get(self, execution_id: str) -> Optional[Execution]:
        with self._mutex:
            return self._executions.get(execution_id)

    def history(self, workflow_id: str, limit: Optional[int] = None) -> List[Execution]:
        with self._mutex:
            ids = list(reversed(self._by_workflow.get(workflow_id, [])))
            if limit is not None:
                ids = ids[:limit]
            return [self._executions[i] for i in ids]

    def acquire_lock(self, workflow_id: str, holder: str) -> LockClaim:
        with self._mutex:
            current = self._locks.get(workflow_id)
            if current is not None and not self._is_stale(current.acquired_at):
                return LockClaim(acquired=False, holder=current.holder)
            self._locks[workflow_id] = _Lock(holder=holder, acquired_at=self._clock())
            reclaimed = current.holder if current is not None else None
        if reclaimed:
            logger.warning(
                "Stale execution lock reclaimed",
                extra={"workflow_id": workflow_id, "execution_id": holder, "reclaimed_from": reclaimed},
            )
        return LockClaim(acquired=True, holder=holder, reclaimed_from=reclaimed)

    def refresh_lock(self, workflow_id: str, holder: str) -> bool:
        with self._mutex:
            current = self._locks.get(workflow_id)
            if current is None or current.holder != holder:
                return False
            current.acquired_at = self._clock()
            return True

    def release_lock(self, workflow_id: str, holder: str) -> bool:
        with self._mutex:
            current = self._locks.get(workflow_id)
            if current is None or current.holder != holder:
                return False
            del self._locks[workflow_id]
            return True

    def _claim_key(self, key: str, execution_id: str) -> Optional[str]:
        with self._mutex:
            existing = self._keys.setdefault(key, execution_id)
        return None if existing == execution_id else existing

    def _bind_key(self, key: str, execution_id: str) -> None:
        with self._mutex:
            self._keys[key] = execution_id

    def execution_id_for_key(self, key: str) -> Optional[str]:
        with self._mutex:
            return self._keys.get(key)


__all__ = ["ExecutionLedger", "InMemoryExecutionLedger", "COORDINATOR_LOST"]
