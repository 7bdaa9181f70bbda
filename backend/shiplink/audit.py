"""AuditService: immutable append-only audit log.

Link removals, review flags, re-points and candidate creation all land here.
Static methods, so services append events without DI wiring.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.models.audit import AuditEvent


class AuditService:
    """Static audit event logger and query interface."""

    @staticmethod
    async def log_event(
        db: AsyncSession,
        *,
        event_type: str,
        entity_type: str | None = None,
        entity_id: str | uuid.UUID | None = None,
        action: str | None = None,
        actor: str = "system",
        event_data: dict | None = None,
        previous_state: dict | None = None,
        new_state: dict | None = None,
        rationale: str | None = None,
    ) -> AuditEvent:
        """Append an immutable audit event."""
        event = AuditEvent(
            id=uuid.uuid4(),
            event_type=event_type,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action or event_type,
            actor=actor,
            event_data=event_data,
            previous_state=previous_state,
            new_state=new_state,
            rationale=rationale,
        )
        db.add(event)
        await db.flush()
        return event

    @staticmethod
    async def get_events(
        db: AsyncSession,
        *,
        entity_type: str | None = None,
        event_type: str | None = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Query audit events with filtering and pagination, newest first."""
        query = select(AuditEvent)
        count_query = select(func.count(AuditEvent.id))

        if entity_type:
            query = query.where(AuditEvent.entity_type == entity_type)
            count_query = count_query.where(AuditEvent.entity_type == entity_type)
        if event_type:
            query = query.where(AuditEvent.event_type == event_type)
            count_query = count_query.where(AuditEvent.event_type == event_type)

        total = (await db.execute(count_query)).scalar_one()

        offset = (page - 1) * per_page
        query = query.order_by(AuditEvent.created_at.desc()).offset(offset).limit(per_page)
        events = list((await db.execute(query)).scalars().all())
        return events, total

    @staticmethod
    async def get_entity_trail(
        db: AsyncSession,
        entity_type: str,
        entity_id: str | uuid.UUID,
    ) -> list[AuditEvent]:
        """Get the full audit trail for a specific entity, oldest first."""
        result = await db.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == str(entity_id))
            .order_by(AuditEvent.created_at.asc())
        )
        return list(result.scalars().all())
