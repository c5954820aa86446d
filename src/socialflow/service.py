"""
Workflow service - the engine's produced interface.

Execution is asynchronous: ``execute_workflow`` and ``ingest_webhook``
accept a job and return it; the resulting Execution is looked up later by
the job's idempotency key.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from socialflow.errors import (
    ExecutionNotFoundError,
    StructuralError,
    TriggerNotFoundError,
    WorkflowNotFoundError,
)
from socialflow.graph import (
    GraphEdit,
    GraphStore,
    NodeType,
    WorkflowGraph,
    apply_edit,
    validate,
)
from socialflow.graph.node_types import ScheduleTriggerConfig
from socialflow.jobs import Job, JobQueue
from socialflow.observability import get_logger, with_trace_context
from socialflow.scheduling import Schedule, Scheduler
from socialflow.storage import Execution, ExecutionLedger
from socialflow.validation import ValidationIssue, ValidationResult

logger = get_logger(__name__)


class WorkflowService:
    """Facade over graph storage, scheduling, the job queue and the ledger."""

    def __init__(
        self,
        graph_store: GraphStore,
        scheduler: Scheduler,
        queue: JobQueue,
        ledger: ExecutionLedger,
    ):
        self.graph_store = graph_store
        self.scheduler = scheduler
        self.queue = queue
        self.ledger = ledger

    # -- graphs -----------------------------------------------------------

    def validate_graph(self, graph: WorkflowGraph) -> ValidationResult:
        return validate(graph)

    def save_graph(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Store a new version. Raises StructuralError for an invalid graph."""
        return self.graph_store.save(graph)

    def get_graph(self, workflow_id: str, version: Optional[int] = None) -> WorkflowGraph:
        graph = self.graph_store.get(workflow_id, version)
        if graph is None:
            raise WorkflowNotFoundError(workflow_id)
        return graph

    def apply_edit(self, workflow_id: str, edit: GraphEdit) -> WorkflowGraph:
        """Apply a validated edit to the latest version and store the result."""
        edited = apply_edit(self.get_graph(workflow_id), edit)
        return self.graph_store.save(edited)

    def export_graph(self, workflow_id: str, version: Optional[int] = None) -> str:
        return self.get_graph(workflow_id, version).export_json()

    def import_graph(self, raw: str | bytes | Dict[str, Any]) -> WorkflowGraph:
        """
        Import a graph from the exchange format, e.g. a candidate produced by
        the natural-language generator. It is stored only if it validates.
        """
        return self.graph_store.save(WorkflowGraph.import_json(raw))

    # -- execution --------------------------------------------------------

    def execute_workflow(self, workflow_id: str, trigger: Any = None) -> Job:
        """Accept a manual run. Completion is asynchronous."""
        self.get_graph(workflow_id)
        job = Job.manual(workflow_id, data=trigger)
        self.queue.enqueue(job)
        logger.info(
            "Manual execution accepted",
            extra=with_trace_context(workflow_id=workflow_id, job_key=job.idempotency_key),
        )
        return job

    def ingest_webhook(self, workflow_id: str, node_id: str, payload: Any) -> Job:
        """Map an inbound payload onto a webhook trigger's output, verbatim."""
        graph = self.get_graph(workflow_id)
        node = graph.get_node(node_id)
        if node is None or node.type != NodeType.WEBHOOK_TRIGGER.value:
            raise TriggerNotFoundError(workflow_id, node_id)
        job = Job.webhook(workflow_id, node_id, payload)
        self.queue.enqueue(job)
        logger.info(
            "Webhook accepted",
            extra=with_trace_context(workflow_id=workflow_id, node_id=node_id, job_key=job.idempotency_key),
        )
        return job

    def get_execution(self, execution_id: str) -> Execution:
        execution = self.ledger.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def get_execution_for_job(self, idempotency_key: str) -> Optional[Execution]:
        return self.ledger.execution_for_key(idempotency_key)

    def get_execution_history(self, workflow_id: str, limit: Optional[int] = None) -> List[Execution]:
        """Executions of a workflow, newest first."""
        return self.ledger.history(workflow_id, limit)

    # -- schedules --------------------------------------------------------

    def schedule_workflow(
        self,
        workflow_id: str,
        cron: Optional[str] = None,
        timezone: Optional[str] = None,
    ) -> str:
        """
        Schedule a workflow. Missing cron or timezone fall back to the
        graph's schedule trigger configuration.

        Returns:
            The schedule id
        """
        graph = self.get_graph(workflow_id)
        if cron is None or timezone is None:
            for node in graph.nodes_of_type(NodeType.SCHEDULE_TRIGGER):
                config = ScheduleTriggerConfig.model_validate(node.config)
                cron = cron or config.cron
                timezone = timezone or config.timezone
                break
        if cron is None:
            raise StructuralError([ValidationIssue(
                code="missing_cron",
                message=f"Workflow {workflow_id} has no cron expression to schedule",
            )])
        schedule = self.scheduler.create(workflow_id, cron, timezone or "UTC")
        return schedule.schedule_id

    def get_schedule(self, schedule_id: str) -> Schedule:
        return self.scheduler.get(schedule_id)

    def list_schedules(self, workflow_id: Optional[str] = None) -> List[Schedule]:
        return self.scheduler.registry.list(workflow_id)

    def pause_schedule(self, schedule_id: str) -> Schedule:
        return self.scheduler.pause(schedule_id)

    def resume_schedule(self, schedule_id: str) -> Schedule:
        return self.scheduler.resume(schedule_id)

    def cancel_schedule(self, schedule_id: str) -> None:
        self.scheduler.cancel(schedule_id)


__all__ = ["WorkflowService"]
