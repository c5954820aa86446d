"""Inbound webhook routes."""
from typing import Any

from fastapi import APIRouter, Body

from socialflow.api.routes.workflows import JobAcceptedResponse
from socialflow.bootstrap import get_engine

router = APIRouter()


@router.post("/v1/webhooks/{workflow_id}/{node_id}", response_model=JobAcceptedResponse, status_code=202)
def receive_webhook(workflow_id: str, node_id: str, payload: Any = Body(default=None)) -> JobAcceptedResponse:
    """
    Run a workflow from one of its webhook triggers.

    The request body becomes the trigger's output verbatim.
    """
    job = get_engine().service.ingest_webhook(workflow_id, node_id, payload)
    return JobAcceptedResponse(
        workflow_id=job.workflow_id,
        idempotency_key=job.idempotency_key,
        enqueued_at=job.enqueued_at.isoformat(),
    )
