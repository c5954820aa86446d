"""Workflow graph and execution routes."""
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from socialflow.bootstrap import get_engine
from socialflow.graph import GraphEdit, WorkflowGraph
from socialflow.observability import get_logger
from socialflow.storage import Execution
from socialflow.validation import ValidationResult

logger = get_logger(__name__)
router = APIRouter()


class EditRequest(BaseModel):
    """Request model for a single graph edit."""

    edit: GraphEdit = Field(..., description="Edit to apply to the latest version")


class ExecuteRequest(BaseModel):
    """Request model for a manual run."""

    trigger: Any = Field(default=None, description="Payload for the manual trigger")


class JobAcceptedResponse(BaseModel):
    """Response model for an accepted job. Completion is asynchronous."""

    workflow_id: str = Field(..., description="Workflow ID")
    idempotency_key: str = Field(..., description="Key to look the execution up by")
    enqueued_at: str = Field(..., description="Enqueue timestamp")


@router.post("/v1/workflows/validate", response_model=ValidationResult)
def validate_workflow(graph: WorkflowGraph) -> ValidationResult:
    """Validate a graph without storing it."""
    return get_engine().service.validate_graph(graph)


@router.put("/v1/workflows/{workflow_id}/graph", response_model=WorkflowGraph)
def save_workflow(workflow_id: str, graph: WorkflowGraph) -> WorkflowGraph:
    """
    Store a new graph version.

    Raises:
        HTTPException: If the path and body workflow ids differ
    """
    if graph.workflow_id != workflow_id:
        raise HTTPException(status_code=400, detail="workflow_id does not match the path")
    saved = get_engine().service.save_graph(graph)
    logger.info("Graph saved via API", extra={"workflow_id": workflow_id, "version": saved.version})
    return saved


@router.get("/v1/workflows/{workflow_id}/graph", response_model=WorkflowGraph)
def get_workflow(workflow_id: str, version: Optional[int] = None) -> WorkflowGraph:
    """Get the latest (or a specific) graph version."""
    return get_engine().service.get_graph(workflow_id, version)


@router.post("/v1/workflows/{workflow_id}/edits", response_model=WorkflowGraph)
def edit_workflow(workflow_id: str, request: EditRequest) -> WorkflowGraph:
    """Apply an edit; the result is stored only if it validates."""
    return get_engine().service.apply_edit(workflow_id, request.edit)


@router.post("/v1/workflows/{workflow_id}/execute", response_model=JobAcceptedResponse, status_code=202)
def execute_workflow(workflow_id: str, request: ExecuteRequest) -> JobAcceptedResponse:
    """Accept a manual run."""
    job = get_engine().service.execute_workflow(workflow_id, request.trigger)
    return JobAcceptedResponse(
        workflow_id=job.workflow_id,
        idempotency_key=job.idempotency_key,
        enqueued_at=job.enqueued_at.isoformat(),
    )


@router.get("/v1/workflows/{workflow_id}/executions", response_model=List[Execution])
def list_executions(workflow_id: str, limit: Optional[int] = None) -> List[Execution]:
    """Execution history, newest first."""
    return get_engine().service.get_execution_history(workflow_id, limit)


@router.get("/v1/executions/{execution_id}", response_model=Execution)
def get_execution(execution_id: str) -> Execution:
    """Get one execution record."""
    return get_engine().service.get_execution(execution_id)


@router.get("/v1/jobs/{idempotency_key}/execution", response_model=Execution)
def get_job_execution(idempotency_key: str) -> Execution:
    """
    Get the execution a job produced.

    Raises:
        HTTPException: If the job has not been picked up yet
    """
    execution = get_engine().service.get_execution_for_job(idempotency_key)
    if execution is None:
        raise HTTPException(status_code=404, detail="No execution for this job yet")
    return execution
