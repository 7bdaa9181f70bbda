"""Deduplicator: fingerprints one email thread and records primary/duplicate roles."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dedup.fingerprint import ThreadMessage, assign_duplicates, compute_fingerprint
from shiplink.models.document import ClassifiedDocument
from shiplink.timeutil import as_utc, utcnow

logger = logging.getLogger("shiplink.dedup")


@dataclass
class ThreadDedupResult:
    thread_id: str
    documents: int
    duplicate_groups: int
    duplicates: int


class Deduplicator:
    async def thread_ids(self, db: AsyncSession) -> list[str]:
        result = await db.execute(
            select(ClassifiedDocument.thread_id).distinct().order_by(ClassifiedDocument.thread_id)
        )
        return list(result.scalars().all())

    async def deduplicate_thread(self, db: AsyncSession, thread_id: str) -> ThreadDedupResult:
        """Recompute fingerprints for a thread and mark exactly one primary per group."""
        docs = list((await db.execute(
            select(ClassifiedDocument).where(ClassifiedDocument.thread_id == thread_id)
        )).scalars().all())
        by_email = {d.email_id: d for d in docs}

        messages = [
            ThreadMessage(
                email_id=d.email_id,
                received_at=as_utc(d.received_at),
                subject=d.subject,
                fingerprint=compute_fingerprint(d.body_text, d.attachment_text, fallback=d.upstream_fingerprint),
            )
            for d in docs
        ]
        assignments = assign_duplicates(messages)

        now = utcnow()
        grouped: set[str] = set()
        duplicates = 0
        for a in assignments:
            doc = by_email[a.email_id]
            doc.content_fingerprint = a.fingerprint
            doc.is_primary = a.is_primary
            doc.duplicate_of = a.duplicate_of
            doc.thread_position = a.thread_position
            doc.deduplicated_at = now
            if not a.is_primary:
                duplicates += 1
                grouped.add(a.fingerprint)

        await db.flush()
        if duplicates:
            logger.info("Thread %s: %d duplicates across %d groups", thread_id, duplicates, len(grouped))
        return ThreadDedupResult(thread_id, len(docs), len(grouped), duplicates)
