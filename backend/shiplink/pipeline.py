"""BatchRunner: one linking run end to end.

Flow:
1. Load the identifier index snapshot (the only fatal step)
2. Deduplicate every thread
3. Resolve primary documents that need it
4. Give duplicates audit links to their primary's shipment
5. Cross-link validation (on by default after a backfill)
6. Per shipment: rebuild the journey timeline, then sync blockers

Every unit (thread, document, shipment) runs in its own session on a bounded
pool and commits on its own. A failing unit is rolled back, logged and
recorded in the report; the run carries on. A stage that cannot list its units
is skipped and recorded the same way. Anything else marks the run failed.
"""

import asyncio
import json
import logging
import time
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shiplink.blockers.service import BlockerService
from shiplink.config import Settings
from shiplink.cross_link.service import CrossLinkValidator
from shiplink.cross_link.validator import CrossLinkOutcome
from shiplink.dedup.service import Deduplicator
from shiplink.linking.index import IdentifierIndex, IndexSnapshotError, load_index_snapshot
from shiplink.linking.service import LinkingService, LinkOutcome
from shiplink.models.link import LinkSource
from shiplink.models.run import LinkingRun, RunStatus
from shiplink.models.shipment import Shipment
from shiplink.timeutil import utcnow
from shiplink.workflow.service import TimelineService
from shiplink.workflow.states import WorkflowStateTable

logger = logging.getLogger("shiplink.pipeline")


@dataclass
class RunReport:
    link_source: str = LinkSource.BACKFILL.value
    index_shipments: int = 0

    # Resolution
    documents_considered: int = 0
    linked: dict[str, int] = field(default_factory=dict)
    ambiguous: dict[str, int] = field(default_factory=dict)
    orphan: int = 0
    suppressed: int = 0
    malformed_identifiers: int = 0
    unrecognized_identifiers: int = 0

    # Deduplication
    threads_processed: int = 0
    duplicate_groups: int = 0
    duplicates_marked: int = 0
    duplicate_links: int = 0

    # Cross-link validation
    cross_links_checked: int = 0
    cross_links_confirmed: int = 0
    cross_links_flagged: int = 0
    cross_links_removed: int = 0

    # Timeline and blockers
    shipments_processed: int = 0
    state_changes: int = 0
    unmapped_pairs: dict[str, int] = field(default_factory=dict)
    anomalies_detected: int = 0
    anomalies_created: int = 0
    blockers_opened: int = 0
    blockers_updated: int = 0
    blockers_resolved: int = 0

    failures: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)

    def add_link_outcome(self, outcome: LinkOutcome) -> None:
        resolution = outcome.resolution
        self.documents_considered += 1
        self.malformed_identifiers += resolution.malformed
        self.unrecognized_identifiers += resolution.unrecognized
        match_type = resolution.match_type.value
        if outcome.outcome == "linked":
            self.linked[match_type] = self.linked.get(match_type, 0) + 1
        elif outcome.outcome == "ambiguous":
            self.ambiguous[match_type] = self.ambiguous.get(match_type, 0) + 1
        elif outcome.outcome == "suppressed":
            self.suppressed += 1
        else:
            self.orphan += 1


class BatchRunner:
    """Runs dedup, resolution, validation, timeline and blockers as one batch."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        table: WorkflowStateTable | None = None,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.linking = LinkingService(settings)
        self.deduplicator = Deduplicator()
        self.cross_link = CrossLinkValidator()
        self.timelines = TimelineService(settings, table)
        self.blockers = BlockerService(settings, self.timelines.table)

    async def run(
        self,
        link_source: LinkSource = LinkSource.BACKFILL,
        relink: bool = False,
        validate_links: bool | None = None,
    ) -> LinkingRun:
        """Execute one batch run and return its persisted LinkingRun record."""
        start = time.perf_counter()
        report = RunReport(link_source=link_source.value)
        if validate_links is None:
            validate_links = link_source == LinkSource.BACKFILL and self.settings.validate_links_after_backfill

        async with self.session_factory() as db:
            run = LinkingRun(id=uuid.uuid4(), link_source=link_source, status=RunStatus.RUNNING)
            db.add(run)
            await db.commit()
        run_id = run.id
        logger.info("Linking run %s started (source=%s, relink=%s)", run_id, link_source.value, relink)

        try:
            async with self.session_factory() as db:
                index = await load_index_snapshot(db)
        except IndexSnapshotError as e:
            logger.error("Linking run %s aborted: %s", run_id, e)
            await self._finish(run_id, RunStatus.FAILED, report, start, error=str(e))
            raise
        report.index_shipments = len(index)

        try:
            await self._dedup_stage(report)
            await self._resolve_stage(report, index, link_source, relink)
            await self._propagate_stage(report, link_source)
            if validate_links:
                await self._cross_link_stage(report, index)
            await self._journey_stage(report, index)
        except Exception as e:
            logger.exception("Linking run %s failed", run_id)
            await self._finish(run_id, RunStatus.FAILED, report, start, error=f"{type(e).__name__}: {e}")
            raise

        return await self._finish(run_id, RunStatus.COMPLETED, report, start)

    async def _dedup_stage(self, report: RunReport) -> None:
        thread_ids = await self._list_units(report, "dedup", self.deduplicator.thread_ids)
        results = await self._run_units(report, "dedup", thread_ids, self.deduplicator.deduplicate_thread)
        for result in results:
            report.threads_processed += 1
            report.duplicate_groups += result.duplicate_groups
            report.duplicates_marked += result.duplicates

    async def _resolve_stage(
        self, report: RunReport, index: IdentifierIndex, link_source: LinkSource, relink: bool
    ) -> None:
        email_ids = await self._list_units(
            report, "resolve", lambda db: self.linking.pending_documents(db, relink=relink)
        )

        async def resolve_one(db: AsyncSession, email_id: str) -> LinkOutcome:
            return await self.linking.link_document(db, email_id, index, link_source)

        for outcome in await self._run_units(report, "resolve", email_ids, resolve_one):
            report.add_link_outcome(outcome)

    async def _propagate_stage(self, report: RunReport, link_source: LinkSource) -> None:
        thread_ids = await self._list_units(report, "propagate", self.deduplicator.thread_ids)

        async def propagate(db: AsyncSession, thread_id: str) -> int:
            return await self.linking.propagate_duplicate_links(db, thread_id, link_source)

        report.duplicate_links += sum(await self._run_units(report, "propagate", thread_ids, propagate))

    async def _cross_link_stage(self, report: RunReport, index: IdentifierIndex) -> None:
        email_ids = await self._list_units(report, "cross_link", self.cross_link.active_links)

        async def validate(db: AsyncSession, email_id: str):
            return await self.cross_link.validate(db, email_id, index)

        for result in await self._run_units(report, "cross_link", email_ids, validate):
            if result is None:
                continue
            report.cross_links_checked += 1
            if result.outcome == CrossLinkOutcome.CONFIRMED:
                report.cross_links_confirmed += 1
            elif result.outcome == CrossLinkOutcome.CONTRADICTED:
                report.cross_links_removed += 1
            else:
                report.cross_links_flagged += 1

    async def _journey_stage(self, report: RunReport, index: IdentifierIndex) -> None:
        async def journey(db: AsyncSession, shipment_id: uuid.UUID) -> dict | None:
            shipment = await db.get(Shipment, shipment_id)
            if shipment is None:
                return None
            timeline_result = await self.timelines.rebuild(db, shipment_id)
            blocker_result = await self.blockers.sync(db, shipment, timeline_result.timeline)
            return {"timeline": timeline_result, "blockers": blocker_result}

        unmapped: Counter = Counter(report.unmapped_pairs)
        for result in await self._run_units(report, "journey", list(index.shipments), journey):
            if result is None:
                continue
            timeline_result, blocker_result = result["timeline"], result["blockers"]
            report.shipments_processed += 1
            report.state_changes += int(timeline_result.state_changed)
            report.anomalies_detected += len(timeline_result.timeline.anomalies)
            report.anomalies_created += timeline_result.anomalies_created
            unmapped.update(timeline_result.unmapped)
            report.blockers_opened += blocker_result.opened
            report.blockers_updated += blocker_result.updated
            report.blockers_resolved += blocker_result.resolved
        report.unmapped_pairs = dict(unmapped)
        if unmapped:
            logger.warning("Unmapped workflow pairs: %s", dict(unmapped))

    async def _list_units(
        self,
        report: RunReport,
        stage: str,
        query: Callable[[AsyncSession], Awaitable[Iterable[Any]]],
    ) -> list[Any]:
        """Load a stage's units. A failed listing skips the stage and is recorded in the report."""
        try:
            async with self.session_factory() as db:
                return list(await query(db))
        except Exception as e:
            logger.exception("%s stage could not list its units", stage)
            report.failures.append({
                "stage": stage,
                "unit": None,
                "error": f"{type(e).__name__}: {e}",
            })
            return []

    async def _run_units(
        self,
        report: RunReport,
        stage: str,
        units: Iterable[Any],
        work: Callable[[AsyncSession, Any], Awaitable[Any]],
    ) -> list[Any]:
        """Run ``work`` for each unit on the bounded pool; failed units are left out of the results."""
        semaphore = asyncio.Semaphore(self.settings.linking_worker_pool_size)

        async def run_one(unit: Any) -> tuple[bool, Any]:
            async with semaphore:
                async with self.session_factory() as db:
                    try:
                        value = await asyncio.wait_for(
                            work(db, unit), timeout=self.settings.linking_unit_timeout_seconds
                        )
                        await db.commit()
                        return True, value
                    except Exception as e:
                        await db.rollback()
                        logger.exception("%s unit %s failed", stage, unit)
                        report.failures.append({
                            "stage": stage,
                            "unit": str(unit),
                            "error": f"{type(e).__name__}: {e}",
                        })
                        return False, None

        outcomes = await asyncio.gather(*(run_one(unit) for unit in units))
        return [value for ok, value in outcomes if ok]

    async def _finish(
        self,
        run_id: uuid.UUID,
        status: RunStatus,
        report: RunReport,
        start: float,
        error: str | None = None,
    ) -> LinkingRun:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        async with self.session_factory() as db:
            run = await db.get(LinkingRun, run_id)
            run.status = status
            run.report = report.to_dict()
            run.error = error
            run.processing_time_ms = elapsed_ms
            run.finished_at = utcnow()
            await db.commit()

        logger.info(json.dumps({
            "event": "linking_run_finished",
            "run_id": str(run_id),
            "status": status.value,
            "processing_time_ms": elapsed_ms,
            "report": report.to_dict(),
        }))
        return run
