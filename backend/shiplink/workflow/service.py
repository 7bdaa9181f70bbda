"""TimelineService: rebuilds one shipment's journey from its linked primary documents.

Flow:
1. Load primary, active links for the shipment and their documents
2. Map each (document type, direction) through the workflow state table
3. Walk the ordered events (timeline.build_timeline)
4. Write current state and phase on the shipment
5. Upsert anomalies by (shipment, email); drop anomalies whose event is gone
"""

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.config import Settings
from shiplink.models.document import ClassifiedDocument
from shiplink.models.link import ShipmentDocumentLink
from shiplink.models.shipment import Shipment
from shiplink.models.workflow import WorkflowAnomaly
from shiplink.timeutil import as_utc, utcnow
from shiplink.workflow.states import UnmappedPair, WorkflowStateTable, load_workflow_table
from shiplink.workflow.timeline import Timeline, WorkflowEvent, build_timeline

logger = logging.getLogger("shiplink.workflow")


@dataclass
class TimelineResult:
    shipment_id: uuid.UUID
    timeline: Timeline
    unmapped: Counter = field(default_factory=Counter)
    anomalies_created: int = 0
    anomalies_removed: int = 0
    state_changed: bool = False


class TimelineService:
    """Journey timeline builder for a single shipment."""

    def __init__(self, settings: Settings, table: WorkflowStateTable | None = None):
        self.settings = settings
        self.table = table or load_workflow_table(settings.workflow_table_path)

    async def load_events(
        self, db: AsyncSession, shipment_id: uuid.UUID
    ) -> tuple[list[WorkflowEvent], Counter]:
        """Workflow events for the shipment's primary documents, plus unmapped pair counts."""
        rows = (await db.execute(
            select(ClassifiedDocument)
            .join(ShipmentDocumentLink, ShipmentDocumentLink.email_id == ClassifiedDocument.email_id)
            .where(
                ShipmentDocumentLink.shipment_id == shipment_id,
                ShipmentDocumentLink.is_active.is_(True),
                ClassifiedDocument.is_primary.is_(True),
            )
        )).scalars().all()

        events: list[WorkflowEvent] = []
        unmapped: Counter = Counter()
        for doc in rows:
            direction = doc.direction.value if hasattr(doc.direction, "value") else doc.direction
            mapping = self.table.map_document(doc.document_type, direction)
            if isinstance(mapping, UnmappedPair):
                logger.debug("Unmapped workflow pair %s on %s", mapping.key, doc.email_id)
                unmapped[mapping.key] += 1
                continue
            events.append(WorkflowEvent(
                email_id=doc.email_id,
                state_code=mapping.code,
                phase=mapping.phase,
                rank=mapping.rank,
                occurred_at=as_utc(doc.received_at),
            ))
        return events, unmapped

    async def rebuild(self, db: AsyncSession, shipment_id: uuid.UUID) -> TimelineResult:
        """Recompute the shipment's current state and anomalies from scratch."""
        shipment = await db.get(Shipment, shipment_id)
        if not shipment:
            raise ValueError(f"Shipment {shipment_id} not found")

        events, unmapped = await self.load_events(db, shipment_id)
        timeline = build_timeline(events)
        result = TimelineResult(shipment_id=shipment_id, timeline=timeline, unmapped=unmapped)

        current = timeline.current
        new_state = current.state_code if current else None
        if shipment.workflow_state != new_state:
            previous_rank = shipment.workflow_rank
            shipment.workflow_state = new_state
            shipment.workflow_phase = current.phase.value if current else None
            shipment.workflow_rank = current.rank if current else None
            shipment.workflow_updated_at = utcnow()
            result.state_changed = True
            logger.info(
                "Shipment %s workflow %s (rank %s -> %s)",
                shipment_id, new_state, previous_rank, shipment.workflow_rank,
            )

        existing = {
            a.email_id: a
            for a in (await db.execute(
                select(WorkflowAnomaly).where(WorkflowAnomaly.shipment_id == shipment_id)
            )).scalars().all()
        }
        seen: set[str] = set()
        for anomaly in timeline.anomalies:
            seen.add(anomaly.email_id)
            row = existing.get(anomaly.email_id)
            if row is None:
                db.add(WorkflowAnomaly(
                    shipment_id=shipment_id,
                    email_id=anomaly.email_id,
                    state_code=anomaly.state_code,
                    rank=anomaly.rank,
                    expected_min_rank=anomaly.expected_min_rank,
                    gap=anomaly.gap,
                    occurred_at=anomaly.occurred_at,
                ))
                result.anomalies_created += 1
            else:
                row.state_code = anomaly.state_code
                row.rank = anomaly.rank
                row.expected_min_rank = anomaly.expected_min_rank
                row.gap = anomaly.gap
                row.occurred_at = anomaly.occurred_at

        for email_id, row in existing.items():
            if email_id not in seen:
                await db.delete(row)
                result.anomalies_removed += 1

        await db.flush()
        return result
