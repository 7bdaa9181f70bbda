"""Audit log endpoints: link removals, review flags and candidate history."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit import AuditService
from shiplink.dependencies import get_db
from shiplink.schemas.audit import AuditEventListResponse, AuditEventResponse

router = APIRouter()


@router.get("/events", response_model=AuditEventListResponse)
async def list_events(
    entity_type: str | None = None,
    event_type: str | None = None,
    page: int = 1,
    per_page: int = 50,
    db: AsyncSession = Depends(get_db),
) -> AuditEventListResponse:
    """List audit events with optional filtering."""
    events, total = await AuditService.get_events(
        db, entity_type=entity_type, event_type=event_type, page=page, per_page=per_page,
    )
    return AuditEventListResponse(
        events=[AuditEventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{entity_type}/{entity_id}", response_model=list[AuditEventResponse])
async def entity_trail(
    entity_type: str,
    entity_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[AuditEventResponse]:
    """Full history of one link, candidate or shipment, oldest first."""
    events = await AuditService.get_entity_trail(db, entity_type, entity_id)
    return [AuditEventResponse.model_validate(e) for e in events]
