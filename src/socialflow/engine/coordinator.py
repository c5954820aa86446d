"""
Execution Coordinator - Runs one job against its workflow graph.

SYNC-CELERY SAFE: ``run`` is synchronous. Node executors run on a
bounded thread pool; the calling thread owns all ledger writes.

Flow:
1. Acquire the workflow's execution lock (contention -> LockContentionError)
2. Bind the job's idempotency key (a duplicate returns the earlier execution)
3. Load and re-validate the graph
4. Evaluate nodes in dependency order with per-node deadlines, counted
   from when a pool thread starts the node
5. Aggregate, finalize, release the lock
"""

from __future__ import annotations

import time
import uuid
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional

from pydantic import ValidationError

from socialflow.config import Settings, get_settings
from socialflow.content import OutputStore
from socialflow.errors import ExecutionFinalizedError, LockContentionError, NodeExecutionError, StructuralError
from socialflow.graph import CompiledGraph, GraphStore, NodeCategory, WorkflowGraph, get_type_spec, parse_config, validate
from socialflow.jobs import Job, utc_now
from socialflow.nodes import NodeContext, NodeOutcome, NodeServices, dispatch
from socialflow.observability import get_logger, with_trace_context
from socialflow.storage import (
    Execution,
    ExecutionLedger,
    ExecutionStatus,
    NodeError,
    NodeResult,
    NodeStatus,
)

logger = get_logger(__name__)

# How often queued nodes are checked for having started
START_POLL_S = 0.05


class LockLostError(Exception):
    """The coordinator no longer holds the workflow's lock."""


@dataclass
class _Running:
    index: int
    timeout: float
    # Set by the pool thread when the node starts
    deadline: Optional[float] = None
    started_at: str = ""
    started: float = 0.0


def node_error(exc: BaseException) -> NodeError:
    """Turn a node exception into user-visible error data."""
    if isinstance(exc, NodeExecutionError):
        return NodeError(code=exc.code, message=str(exc), actionable=exc.actionable)
    if isinstance(exc, ValidationError):
        return NodeError(code="invalid_config", message=str(exc))
    if isinstance(exc, TimeoutError):
        return NodeError(code="node_timeout", message=str(exc) or "Node timed out")
    return NodeError(code="node_failed", message=f"{exc.__class__.__name__}: {exc}")


def aggregate_status(graph: WorkflowGraph, results: List[NodeResult]) -> ExecutionStatus:
    """
    Derive the execution status from node results.

    - any trigger failed -> failed
    - every node succeeded without fallback -> success
    - the graph has publishers and none succeeded -> failed
    - the graph has no publishers and no non-trigger node succeeded -> failed
    - otherwise -> partial
    """
    categories = {}
    for node in graph.nodes:
        spec = get_type_spec(node.type)
        categories[node.id] = spec.category if spec else None

    triggers = [r for r in results if categories.get(r.node_id) == NodeCategory.TRIGGER]
    if any(r.status == NodeStatus.FAILED for r in triggers):
        return ExecutionStatus.FAILED

    if all(r.status == NodeStatus.SUCCESS and not r.degraded for r in results):
        return ExecutionStatus.SUCCESS

    actions = [r for r in results if categories.get(r.node_id) == NodeCategory.ACTION]
    if actions:
        if not any(r.status == NodeStatus.SUCCESS for r in actions):
            return ExecutionStatus.FAILED
    else:
        others = [r for r in results if categories.get(r.node_id) != NodeCategory.TRIGGER]
        if not any(r.status == NodeStatus.SUCCESS for r in others):
            return ExecutionStatus.FAILED

    return ExecutionStatus.PARTIAL


class ExecutionCoordinator:
    """
    Usage:
        coordinator = ExecutionCoordinator(graph_store, ledger, services)
        execution = coordinator.run(job)
    """

    def __init__(
        self,
        graph_store: GraphStore,
        ledger: ExecutionLedger,
        services: NodeServices,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.graph_store = graph_store
        self.ledger = ledger
        self.services = services
        self.settings = settings or get_settings()
        self._clock = clock

    def run(self, job: Job) -> Execution:
        """
        Execute ``job``.

        Node failures never escape: they are recorded as NodeResults.

        Raises:
            LockContentionError: another execution of the workflow holds
                the lock; the job must be requeued
        """
        execution_id = str(uuid.uuid4())
        trace = with_trace_context(
            execution_id=execution_id,
            workflow_id=job.workflow_id,
            job_key=job.idempotency_key,
        )

        claim = self.ledger.acquire_lock(job.workflow_id, execution_id)
        if not claim.acquired:
            logger.info("Workflow is locked, job deferred", extra={**trace, "holder": claim.holder})
            raise LockContentionError(job.workflow_id, claim.holder)
        logger.info("Execution lock acquired", extra=trace)

        try:
            if claim.reclaimed_from:
                self.ledger.abandon(claim.reclaimed_from)

            existing = self.ledger.claim_idempotency_key(job.idempotency_key, execution_id)
            if existing is not None:
                logger.info("Duplicate job, returning earlier execution", extra={**trace, "existing": existing})
                return self.ledger.get(existing)

            return self._execute(job, execution_id, trace)
        finally:
            self.ledger.release_lock(job.workflow_id, execution_id)

    def _execute(self, job: Job, execution_id: str, trace: Dict) -> Execution:
        graph = self.graph_store.get(job.workflow_id)
        if graph is None:
            self.ledger.start(job.workflow_id, job.idempotency_key, None, execution_id)
            return self.ledger.complete(execution_id, ExecutionStatus.FAILED, [NodeError(
                code="workflow_not_found",
                message=f"Workflow {job.workflow_id} has no stored graph",
            )])

        self.ledger.start(job.workflow_id, job.idempotency_key, graph.version, execution_id)

        result = validate(graph)
        if not result.ok:
            logger.warning("Graph failed validation, not executed", extra={**trace, "issues": result.codes()})
            return self.ledger.complete(execution_id, ExecutionStatus.FAILED, [NodeError(
                code="structural_error",
                message=str(StructuralError(result.errors)),
                actionable="Fix the workflow graph and run it again",
            )])

        try:
            results = self._evaluate(graph, execution_id, job)
        except LockLostError:
            logger.error("Execution lock lost during evaluation", extra=trace)
            return self.ledger.get(execution_id)
        except Exception as e:
            logger.exception("Evaluation aborted", extra=trace)
            return self.ledger.complete(execution_id, ExecutionStatus.FAILED, [NodeError(
                code="internal_error",
                message=f"{e.__class__.__name__}: {e}",
            )])

        status = aggregate_status(graph, results)
        return self.ledger.complete(execution_id, status)

    def _evaluate(self, graph: WorkflowGraph, execution_id: str, job: Job) -> List[NodeResult]:
        compiled = CompiledGraph(graph)
        order = compiled.evaluation_order()
        outputs = OutputStore()
        port_values: Dict[int, Dict] = {}
        results: Dict[int, NodeResult] = {}
        finished: List[NodeResult] = []

        waiting = {i: len(compiled.upstream[i]) for i in order}
        ready: Deque[int] = deque(i for i in order if waiting[i] == 0)
        running: Dict[Future, _Running] = {}
        capacity = self.settings.worker_pool_size

        def finish(i: int, result: NodeResult) -> None:
            results[i] = result
            finished.append(result)
            try:
                self.ledger.record_node_result(execution_id, result)
            except ExecutionFinalizedError as e:
                raise LockLostError(graph.workflow_id) from e
            if not self.ledger.refresh_lock(graph.workflow_id, execution_id):
                raise LockLostError(graph.workflow_id)
            logger.info(
                "Node finished",
                extra=with_trace_context(
                    execution_id=execution_id,
                    workflow_id=graph.workflow_id,
                    node_id=result.node_id,
                    node_status=result.status.value,
                ),
            )
            for d in compiled.downstream[i]:
                waiting[d] -= 1
                if waiting[d] == 0:
                    ready.append(d)

        pool = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix=f"exec-{execution_id[:8]}")
        try:
            while ready or running:
                while ready and len(running) < capacity:
                    i = ready.popleft()
                    node = compiled.node_at(i)
                    blocked = [
                        compiled.node_at(u).id
                        for u in compiled.upstream[i]
                        if results[u].status != NodeStatus.SUCCESS
                    ]
                    if blocked:
                        now = utc_now().isoformat()
                        finish(i, NodeResult(
                            node_id=node.id,
                            node_type=node.type,
                            status=NodeStatus.SKIPPED,
                            skip_reason=f"Upstream did not succeed: {', '.join(blocked)}",
                            attempts=0,
                            started_at=now,
                            completed_at=now,
                        ))
                        continue

                    inputs = {}
                    for conn in compiled.inbound[i]:
                        value = port_values.get(compiled.index_of(conn.source_node), {}).get(conn.source_port)
                        if value is not None:
                            inputs[conn.target_port] = value

                    timeout = parse_config(node.type, node.config).timeout_s or self.settings.node_timeout_s
                    context = NodeContext(
                        execution_id=execution_id,
                        workflow_id=graph.workflow_id,
                        node_id=node.id,
                        node_type=get_type_spec(node.type).type,
                        deadline=float("inf"),
                        settings=self.settings,
                        services=self.services,
                        trigger=job.trigger,
                        clock=self._clock,
                    )
                    meta = _Running(i, timeout)
                    future = pool.submit(self._start, meta, node, inputs, context)
                    running[future] = meta

                if not running:
                    continue

                done, _ = wait(list(running), timeout=self._wait_timeout(running), return_when=FIRST_COMPLETED)

                for future in done:
                    meta = running.pop(future)
                    result, values = self._collect(compiled, meta, future, outputs)
                    port_values[meta.index] = values
                    finish(meta.index, result)

                now = self._clock()
                for future, meta in list(running.items()):
                    if meta.deadline is None or meta.deadline > now:
                        continue
                    # The thread cannot be stopped; its late result is ignored
                    running.pop(future)
                    node = compiled.node_at(meta.index)
                    finish(meta.index, self._node_result(
                        node.id, node.type, meta, NodeStatus.FAILED,
                        error=self._timeout_error(node.id, node.type, meta),
                    ))
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return finished

    def _start(self, meta: _Running, node, inputs: Dict, context: NodeContext) -> NodeOutcome:
        """Runs on the pool thread; the deadline counts from here, not from submission."""
        meta.started = self._clock()
        meta.started_at = utc_now().isoformat()
        context.deadline = meta.started + meta.timeout
        meta.deadline = context.deadline
        logger.info(
            "Node started",
            extra=with_trace_context(execution_id=context.execution_id, node_id=node.id, node_type=node.type),
        )
        return dispatch(node, inputs, context)

    def _wait_timeout(self, running: Dict[Future, _Running]) -> float:
        deadlines = [r.deadline for r in running.values() if r.deadline is not None]
        timeout = max(0.0, min(deadlines) - self._clock()) if deadlines else START_POLL_S
        if len(deadlines) < len(running):
            # Queued nodes get their deadline once a pool thread picks them up
            timeout = min(timeout, START_POLL_S)
        return timeout

    @staticmethod
    def _timeout_error(node_id: str, node_type: str, meta: _Running) -> NodeError:
        message = f"Node {node_id} exceeded its {meta.timeout:.1f}s deadline"
        spec = get_type_spec(node_type)
        if spec is not None and spec.category == NodeCategory.ACTION:
            return NodeError(
                code="node_timeout",
                message=f"{message}; the post may still have been published",
                actionable=f"Check the {spec.platform.value} account before running the workflow again",
            )
        return NodeError(code="node_timeout", message=message)

    def _collect(self, compiled: CompiledGraph, meta: _Running, future: Future, outputs: OutputStore):
        node = compiled.node_at(meta.index)
        try:
            outcome: NodeOutcome = future.result()
        except Exception as e:
            logger.warning(
                "Node failed",
                extra=with_trace_context(node_id=node.id, error=str(e)),
            )
            return self._node_result(node.id, node.type, meta, NodeStatus.FAILED, error=node_error(e)), {}

        if outcome.skipped:
            return self._node_result(
                node.id, node.type, meta, NodeStatus.SKIPPED,
                skip_reason=outcome.skip_reason,
                fallback=outcome.fallback,
                attempts=outcome.attempts,
            ), {}

        spec = get_type_spec(node.type)
        missing = [p.name for p in spec.outputs if p.name not in outcome.outputs]
        if missing:
            return self._node_result(node.id, node.type, meta, NodeStatus.FAILED, error=NodeError(
                code="missing_output",
                message=f"Node {node.id} produced no value for {', '.join(missing)}",
            )), {}

        output_ref = None
        for port in spec.outputs:
            output_ref = outputs.put(outcome.outputs[port.name])
        return self._node_result(
            node.id, node.type, meta, NodeStatus.SUCCESS,
            output_ref=output_ref,
            degraded=outcome.degraded,
            fallback=outcome.fallback,
            attempts=outcome.attempts,
        ), dict(outcome.outputs)

    def _node_result(self, node_id: str, node_type: str, meta: _Running, status: NodeStatus, **fields) -> NodeResult:
        return NodeResult(
            node_id=node_id,
            node_type=node_type,
            status=status,
            started_at=meta.started_at,
            completed_at=utc_now().isoformat(),
            duration_ms=(self._clock() - meta.started) * 1000,
            **fields,
        )


__all__ = ["ExecutionCoordinator", "aggregate_status", "node_error", "LockLostError"]
