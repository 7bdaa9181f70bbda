"""LinkingService: persists resolver outcomes as links and link candidates.

Flow per document:
1. Parse the stored identifier candidates into tagged identifiers
2. Resolve against the run's index snapshot
3. linked    -> upsert ShipmentDocumentLink keyed by email_id
   ambiguous -> upsert pending LinkCandidate (never promoted automatically)
   orphan    -> no-op, retried on the next run
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit import AuditService
from shiplink.config import Settings
from shiplink.identifiers import parse_identifiers
from shiplink.linking.index import IdentifierIndex
from shiplink.linking.resolver import Resolution, ResolutionStatus, resolve
from shiplink.models.document import ClassifiedDocument
from shiplink.models.link import (
    CandidateStatus,
    LinkCandidate,
    LinkSource,
    ShipmentDocumentLink,
    ValidationStatus,
)
from shiplink.models.shipment import Shipment

logger = logging.getLogger("shiplink.linking")


@dataclass
class LinkOutcome:
    email_id: str
    outcome: str  # linked | ambiguous | orphan | suppressed
    resolution: Resolution


def document_text(doc: ClassifiedDocument) -> str:
    return "\n".join(part for part in (doc.subject, doc.body_text, doc.attachment_text) if part)


class LinkingService:
    """Resolves documents to shipments and writes the outcome."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def pending_documents(self, db: AsyncSession, relink: bool = False) -> list[str]:
        """Email ids of primary documents due for resolution.

        Documents with a pending link candidate are never re-resolved. Without
        ``relink`` documents that already hold an active link are skipped too.
        """
        pending_candidates = select(LinkCandidate.email_id).where(
            LinkCandidate.status == CandidateStatus.PENDING
        )
        query = select(ClassifiedDocument.email_id).where(
            ClassifiedDocument.is_primary.is_(True),
            ClassifiedDocument.email_id.not_in(pending_candidates),
        )
        if not relink:
            linked = select(ShipmentDocumentLink.email_id).where(ShipmentDocumentLink.is_active.is_(True))
            query = query.where(ClassifiedDocument.email_id.not_in(linked))
        result = await db.execute(query.order_by(ClassifiedDocument.received_at.asc()))
        return list(result.scalars().all())

    async def link_document(
        self,
        db: AsyncSession,
        email_id: str,
        index: IdentifierIndex,
        link_source: LinkSource = LinkSource.REALTIME,
    ) -> LinkOutcome:
        """Resolve one document and upsert the result."""
        doc = (await db.execute(
            select(ClassifiedDocument).where(ClassifiedDocument.email_id == email_id)
        )).scalar_one_or_none()
        if not doc:
            raise ValueError(f"Document {email_id} not found")

        resolution = resolve(
            parse_identifiers(doc.identifiers),
            index,
            text=document_text(doc),
            container_recent_days=self.settings.container_recent_days,
            container_stale_days=self.settings.container_stale_days,
        )

        if resolution.status == ResolutionStatus.LINKED:
            # Index may be older than the shipments table
            if await db.get(Shipment, resolution.shipment_id) is None:
                logger.warning("Shipment %s vanished since index snapshot; %s left unlinked",
                               resolution.shipment_id, email_id)
                return LinkOutcome(email_id, "orphan", Resolution(
                    status=ResolutionStatus.ORPHAN,
                    malformed=resolution.malformed,
                    unrecognized=resolution.unrecognized,
                ))
            outcome = await self._upsert_link(db, doc, resolution, link_source)
            return LinkOutcome(email_id, outcome, resolution)

        if resolution.status == ResolutionStatus.AMBIGUOUS:
            await self._upsert_candidate(db, doc, resolution)
            return LinkOutcome(email_id, "ambiguous", resolution)

        return LinkOutcome(email_id, "orphan", resolution)

    async def _upsert_link(
        self,
        db: AsyncSession,
        doc: ClassifiedDocument,
        resolution: Resolution,
        link_source: LinkSource,
    ) -> str:
        link = (await db.execute(
            select(ShipmentDocumentLink).where(ShipmentDocumentLink.email_id == doc.email_id)
        )).scalar_one_or_none()

        if link is None:
            db.add(ShipmentDocumentLink(
                email_id=doc.email_id,
                shipment_id=resolution.shipment_id,
                match_type=resolution.match_type,
                matched_value=resolution.matched_value,
                confidence=resolution.confidence,
                link_source=link_source,
                is_primary=doc.is_primary,
                is_active=True,
                validation_status=ValidationStatus.UNVALIDATED,
            ))
            await db.flush()
            return "linked"

        # A link the validator removed is not re-created for the same shipment
        if link.validation_status == ValidationStatus.REMOVED and link.shipment_id == resolution.shipment_id:
            return "suppressed"

        if link.shipment_id != resolution.shipment_id:
            await AuditService.log_event(
                db,
                event_type="LINK_REPOINTED",
                entity_type="shipment_document_link",
                entity_id=doc.email_id,
                action="relink",
                previous_state={"shipment_id": str(link.shipment_id), "match_type": _value(link.match_type)},
                new_state={"shipment_id": str(resolution.shipment_id), "match_type": resolution.match_type.value},
            )
            link.shipment_id = resolution.shipment_id
            link.validation_status = ValidationStatus.UNVALIDATED
            link.validation_reason = None
            link.validated_at = None

        link.match_type = resolution.match_type
        link.matched_value = resolution.matched_value
        link.confidence = resolution.confidence
        link.link_source = link_source
        link.is_primary = doc.is_primary
        link.is_active = True
        await db.flush()
        return "linked"

    async def _upsert_candidate(
        self, db: AsyncSession, doc: ClassifiedDocument, resolution: Resolution
    ) -> LinkCandidate:
        candidate = (await db.execute(
            select(LinkCandidate).where(LinkCandidate.email_id == doc.email_id)
        )).scalar_one_or_none()
        candidate_ids = [str(sid) for sid in resolution.candidate_ids]

        if candidate is None:
            candidate = LinkCandidate(
                email_id=doc.email_id,
                match_type=resolution.match_type,
                candidate_shipment_ids=candidate_ids,
                matched_values=resolution.matched_values,
                status=CandidateStatus.PENDING,
            )
            db.add(candidate)
            await db.flush()
            await AuditService.log_event(
                db,
                event_type="LINK_CANDIDATE_CREATED",
                entity_type="link_candidate",
                entity_id=doc.email_id,
                action="create",
                new_state={
                    "match_type": resolution.match_type.value,
                    "candidate_shipment_ids": candidate_ids,
                    "matched_values": resolution.matched_values,
                },
            )
        elif candidate.status == CandidateStatus.PENDING:
            candidate.match_type = resolution.match_type
            candidate.candidate_shipment_ids = candidate_ids
            candidate.matched_values = resolution.matched_values
            await db.flush()
        # Resolved/dismissed candidates were actioned by a person and stay as they are
        return candidate

    async def propagate_duplicate_links(
        self,
        db: AsyncSession,
        thread_id: str,
        link_source: LinkSource = LinkSource.REALTIME,
    ) -> int:
        """Give each duplicate in a thread an audit-only link to its primary's shipment."""
        docs = list((await db.execute(
            select(ClassifiedDocument).where(ClassifiedDocument.thread_id == thread_id)
        )).scalars().all())
        duplicates = [d for d in docs if not d.is_primary and d.duplicate_of]
        if not duplicates:
            return 0

        email_ids = [d.email_id for d in docs]
        links = {
            link.email_id: link
            for link in (await db.execute(
                select(ShipmentDocumentLink).where(ShipmentDocumentLink.email_id.in_(email_ids))
            )).scalars().all()
        }

        propagated = 0
        for dup in duplicates:
            primary_link = links.get(dup.duplicate_of)
            existing = links.get(dup.email_id)
            if primary_link is None or not primary_link.is_active:
                # A document that became a duplicate keeps its link, but never as primary
                if existing is not None:
                    existing.is_primary = False
                continue
            if existing is None:
                db.add(ShipmentDocumentLink(
                    email_id=dup.email_id,
                    shipment_id=primary_link.shipment_id,
                    match_type=primary_link.match_type,
                    matched_value=primary_link.matched_value,
                    confidence=primary_link.confidence,
                    link_source=link_source,
                    is_primary=False,
                    is_active=True,
                    validation_status=ValidationStatus.UNVALIDATED,
                ))
                propagated += 1
                continue
            if existing.validation_status == ValidationStatus.REMOVED and existing.shipment_id == primary_link.shipment_id:
                continue
            if (
                existing.shipment_id != primary_link.shipment_id
                or existing.is_primary
                or not existing.is_active
            ):
                if existing.shipment_id != primary_link.shipment_id:
                    existing.validation_status = ValidationStatus.UNVALIDATED
                    existing.validation_reason = None
                existing.shipment_id = primary_link.shipment_id
                existing.match_type = primary_link.match_type
                existing.matched_value = primary_link.matched_value
                existing.confidence = primary_link.confidence
                existing.is_primary = False
                existing.is_active = True
                propagated += 1

        await db.flush()
        return propagated


def _value(member) -> str:
    return member.value if hasattr(member, "value") else str(member)
