"""Pydantic schemas for shipment journey timelines."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class TimelineEventResponse(BaseModel):
    email_id: str
    state_code: str
    phase: str
    rank: int
    occurred_at: datetime
    is_anomaly: bool = False


class WorkflowAnomalyResponse(BaseModel):
    email_id: str
    state_code: str
    rank: int
    expected_min_rank: int
    gap: int
    occurred_at: datetime

    model_config = {"from_attributes": True}


class BlockerResponse(BaseModel):
    blocker_type: str
    severity: str
    deadline: datetime
    days_overdue: float
    expected_state: str
    detected_at: datetime
    resolved_at: datetime | None = None

    model_config = {"from_attributes": True}


class ShipmentTimelineResponse(BaseModel):
    shipment_id: uuid.UUID
    workflow_state: str | None = None
    workflow_phase: str | None = None
    workflow_rank: int | None = None
    table_version: str
    events: list[TimelineEventResponse] = Field(default_factory=list)
    anomalies: list[WorkflowAnomalyResponse] = Field(default_factory=list)
    blockers: list[BlockerResponse] = Field(default_factory=list)
    unmapped: dict[str, int] = Field(default_factory=dict)
