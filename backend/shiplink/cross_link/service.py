"""CrossLinkValidator: re-audits active links against document content.

Idempotent: a link whose outcome has not changed is left untouched and no
further audit event is written.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.audit import AuditService
from shiplink.cross_link.validator import CrossLinkOutcome, CrossLinkResult, validate_link
from shiplink.linking.index import IdentifierIndex
from shiplink.models.document import ClassifiedDocument
from shiplink.models.link import ShipmentDocumentLink, ValidationStatus
from shiplink.timeutil import utcnow

logger = logging.getLogger("shiplink.cross_link")

_STATUS_FOR_OUTCOME = {
    CrossLinkOutcome.CONFIRMED: ValidationStatus.CONFIRMED,
    CrossLinkOutcome.CONTRADICTED: ValidationStatus.REMOVED,
    CrossLinkOutcome.INCONCLUSIVE: ValidationStatus.FLAGGED,
}


class CrossLinkValidator:
    async def active_links(self, db: AsyncSession) -> list[str]:
        result = await db.execute(
            select(ShipmentDocumentLink.email_id)
            .where(ShipmentDocumentLink.is_active.is_(True))
            .order_by(ShipmentDocumentLink.email_id)
        )
        return list(result.scalars().all())

    async def validate(
        self, db: AsyncSession, email_id: str, index: IdentifierIndex
    ) -> CrossLinkResult | None:
        """Validate one active link. Returns None when there is nothing to check."""
        link = (await db.execute(
            select(ShipmentDocumentLink).where(
                ShipmentDocumentLink.email_id == email_id,
                ShipmentDocumentLink.is_active.is_(True),
            )
        )).scalar_one_or_none()
        if link is None:
            return None
        doc = (await db.execute(
            select(ClassifiedDocument).where(ClassifiedDocument.email_id == email_id)
        )).scalar_one_or_none()
        if doc is None:
            return None

        text = "\n".join(part for part in (doc.subject, doc.body_text) if part)
        result = validate_link(link.shipment_id, text, index)
        new_status = _STATUS_FOR_OUTCOME[result.outcome]

        if link.validation_status == new_status and link.validation_reason == result.reason:
            return result

        previous = {
            "validation_status": _value(link.validation_status),
            "is_active": link.is_active,
            "shipment_id": str(link.shipment_id),
        }
        link.validation_status = new_status
        link.validation_reason = result.reason
        link.validated_at = utcnow()

        if result.outcome == CrossLinkOutcome.CONTRADICTED:
            link.is_active = False
            logger.warning("Removed cross-link %s -> %s: %s", email_id, link.shipment_id, result.reason)
            await AuditService.log_event(
                db,
                event_type="CROSS_LINK_REMOVED",
                entity_type="shipment_document_link",
                entity_id=email_id,
                action="remove",
                previous_state=previous,
                new_state={"validation_status": new_status.value, "is_active": False},
                event_data=result.evidence(),
                rationale=result.reason,
            )
        elif result.outcome == CrossLinkOutcome.INCONCLUSIVE:
            await AuditService.log_event(
                db,
                event_type="CROSS_LINK_FLAGGED",
                entity_type="shipment_document_link",
                entity_id=email_id,
                action="flag",
                previous_state=previous,
                new_state={"validation_status": new_status.value},
                event_data=result.evidence(),
                rationale=result.reason,
            )

        await db.flush()
        return result


def _value(member) -> str:
    return member.value if hasattr(member, "value") else str(member)
