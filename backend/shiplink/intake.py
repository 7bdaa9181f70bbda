"""DocumentIntake: stores classifier output. Classified documents are immutable once stored."""

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.models.document import ClassifiedDocument
from shiplink.schemas.document import ClassifiedDocumentIn, IngestResponse

logger = logging.getLogger("shiplink.intake")


class DocumentIntake:
    async def ingest(self, db: AsyncSession, documents: Iterable[ClassifiedDocumentIn]) -> IngestResponse:
        """Insert new documents; an email id that is already stored is left untouched."""
        batch = list(documents)
        email_ids = [d.email_id for d in batch]
        existing = set((await db.execute(
            select(ClassifiedDocument.email_id).where(ClassifiedDocument.email_id.in_(email_ids))
        )).scalars().all()) if email_ids else set()

        inserted = 0
        for doc in batch:
            if doc.email_id in existing:
                continue
            existing.add(doc.email_id)
            db.add(ClassifiedDocument(
                email_id=doc.email_id,
                thread_id=doc.thread_id,
                document_type=doc.document_type,
                direction=doc.direction,
                identifiers=[c.model_dump() for c in doc.identifiers],
                subject=doc.subject,
                body_text=doc.body_text,
                attachment_text=doc.attachment_text,
                received_at=doc.received_at,
                upstream_fingerprint=doc.content_fingerprint,
            ))
            inserted += 1

        await db.flush()
        logger.info("Ingested %d of %d classified documents", inserted, len(batch))
        return IngestResponse(received=len(batch), inserted=inserted, skipped_existing=len(batch) - inserted)


def read_jsonl(path: str | Path) -> list[ClassifiedDocumentIn]:
    """Parse one ClassifiedDocumentIn per non-empty line."""
    documents = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                documents.append(ClassifiedDocumentIn.model_validate(json.loads(line)))
            except ValueError as e:
                raise ValueError(f"{path}:{line_no}: {e}") from e
    return documents
