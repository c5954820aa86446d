"""Schedule management routes."""
from typing import List, Optional

from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from socialflow.bootstrap import get_engine
from socialflow.observability import get_logger
from socialflow.scheduling import Schedule

logger = get_logger(__name__)
router = APIRouter()


class CreateScheduleRequest(BaseModel):
    """Request model for scheduling a workflow."""

    workflow_id: str = Field(..., description="Workflow to schedule")
    cron: Optional[str] = Field(
        default=None,
        description="Cron expression; defaults to the graph's schedule trigger",
    )
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone; defaults to the graph's schedule trigger or UTC",
    )


@router.post("/v1/schedules", response_model=Schedule, status_code=201)
def create_schedule(request: CreateScheduleRequest) -> Schedule:
    """Create a schedule for a workflow."""
    service = get_engine().service
    schedule_id = service.schedule_workflow(request.workflow_id, request.cron, request.timezone)
    logger.info(
        "Schedule created via API",
        extra={"schedule_id": schedule_id, "workflow_id": request.workflow_id},
    )
    return service.get_schedule(schedule_id)


@router.get("/v1/schedules", response_model=List[Schedule])
def list_schedules(workflow_id: Optional[str] = None) -> List[Schedule]:
    return get_engine().service.list_schedules(workflow_id)


@router.get("/v1/schedules/{schedule_id}", response_model=Schedule)
def get_schedule(schedule_id: str) -> Schedule:
    return get_engine().service.get_schedule(schedule_id)


@router.post("/v1/schedules/{schedule_id}/pause", response_model=Schedule)
def pause_schedule(schedule_id: str) -> Schedule:
    """Stop firing; ``next_fire_at`` is frozen."""
    return get_engine().service.pause_schedule(schedule_id)


@router.post("/v1/schedules/{schedule_id}/resume", response_model=Schedule)
def resume_schedule(schedule_id: str) -> Schedule:
    """Resume firing from the next instant after now."""
    return get_engine().service.resume_schedule(schedule_id)


@router.delete("/v1/schedules/{schedule_id}", status_code=204)
def cancel_schedule(schedule_id: str) -> Response:
    get_engine().service.cancel_schedule(schedule_id)
    return Response(status_code=204)
