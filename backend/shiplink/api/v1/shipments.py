"""Shipment journey endpoints: ordered timeline, anomalies and blockers."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_db, get_timeline_service
from shiplink.models.shipment import Shipment
from shiplink.models.workflow import Blocker, WorkflowAnomaly
from shiplink.schemas.shipment import (
    BlockerResponse,
    ShipmentTimelineResponse,
    TimelineEventResponse,
    WorkflowAnomalyResponse,
)
from shiplink.workflow.service import TimelineService
from shiplink.workflow.timeline import build_timeline

router = APIRouter()


@router.get("/{shipment_id}/timeline", response_model=ShipmentTimelineResponse)
async def get_timeline(
    shipment_id: uuid.UUID,
    include_resolved: bool = False,
    db: AsyncSession = Depends(get_db),
    timelines: TimelineService = Depends(get_timeline_service),
) -> ShipmentTimelineResponse:
    """Read-only view of the shipment's journey as of the last run."""
    shipment = await db.get(Shipment, shipment_id)
    if not shipment:
        raise HTTPException(status_code=404, detail="Shipment not found")

    events, unmapped = await timelines.load_events(db, shipment_id)
    timeline = build_timeline(events)
    anomalous = {a.email_id for a in timeline.anomalies}

    anomalies = (await db.execute(
        select(WorkflowAnomaly)
        .where(WorkflowAnomaly.shipment_id == shipment_id)
        .order_by(WorkflowAnomaly.occurred_at.asc())
    )).scalars().all()

    blocker_query = select(Blocker).where(Blocker.shipment_id == shipment_id)
    if not include_resolved:
        blocker_query = blocker_query.where(Blocker.resolved_at.is_(None))
    blockers = (await db.execute(blocker_query.order_by(Blocker.deadline.asc()))).scalars().all()

    return ShipmentTimelineResponse(
        shipment_id=shipment.id,
        workflow_state=shipment.workflow_state,
        workflow_phase=shipment.workflow_phase,
        workflow_rank=shipment.workflow_rank,
        table_version=timelines.table.version,
        events=[
            TimelineEventResponse(
                email_id=e.email_id,
                state_code=e.state_code,
                phase=e.phase.value,
                rank=e.rank,
                occurred_at=e.occurred_at,
                is_anomaly=e.email_id in anomalous,
            )
            for e in timeline.events
        ],
        anomalies=[WorkflowAnomalyResponse.model_validate(a) for a in anomalies],
        blockers=[BlockerResponse.model_validate(b) for b in blockers],
        unmapped=dict(unmapped),
    )
