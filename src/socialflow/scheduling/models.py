"""Schedule records."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Schedule(BaseModel):
    """
    A cron schedule for one workflow.

    ``next_fire_at`` only moves forward and only the scheduler moves it.
    Pausing freezes it; cancelling removes the schedule.
    """

    schedule_id: str = Field(..., description="Unique schedule ID")
    workflow_id: str = Field(..., description="Workflow to execute")
    cron: str = Field(..., description="Cron expression")
    timezone: str = Field(default="UTC", description="IANA timezone the cron is evaluated in")
    next_fire_at: datetime = Field(..., description="Next firing instant (UTC)")
    active: bool = Field(default=True, description="False while paused")
    created_at: datetime = Field(..., description="Creation timestamp")
    last_fired_at: Optional[datetime] = Field(default=None, description="Instant of the last enqueued firing")


__all__ = ["Schedule"]
