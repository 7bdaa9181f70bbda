"""BlockerService: keeps shipment_blockers in step with deadlines and the timeline.

One row per (shipment, blocker type). Re-running refreshes severity and age,
resolves blockers whose expected state has arrived, and reopens a resolved
blocker if the condition comes back.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.blockers.detectors import BlockerFinding, derive_blockers, is_open_shipment
from shiplink.config import Settings
from shiplink.models.shipment import Shipment
from shiplink.models.workflow import Blocker
from shiplink.timeutil import utcnow
from shiplink.workflow.states import WorkflowStateTable, load_workflow_table
from shiplink.workflow.timeline import Timeline

logger = logging.getLogger("shiplink.blockers")


@dataclass
class BlockerSyncResult:
    opened: int = 0
    updated: int = 0
    resolved: int = 0
    findings: list[BlockerFinding] = field(default_factory=list)


class BlockerService:
    """Derives deadline blockers for one shipment."""

    def __init__(self, settings: Settings, table: WorkflowStateTable | None = None):
        self.settings = settings
        self.table = table or load_workflow_table(settings.workflow_table_path)

    async def sync(
        self,
        db: AsyncSession,
        shipment: Shipment,
        timeline: Timeline,
        now: datetime | None = None,
    ) -> BlockerSyncResult:
        now = now or utcnow()
        result = BlockerSyncResult()

        if is_open_shipment(shipment.status, shipment.workflow_phase):
            result.findings = derive_blockers(
                {
                    "si_cutoff": shipment.si_cutoff,
                    "vgm_cutoff": shipment.vgm_cutoff,
                    "cargo_cutoff": shipment.cargo_cutoff,
                },
                timeline.reached_states,
                timeline.max_rank,
                now,
                self.table,
                high_after_days=self.settings.blocker_high_after_days,
                critical_after_days=self.settings.blocker_critical_after_days,
            )

        existing = {
            _value(b.blocker_type): b
            for b in (await db.execute(
                select(Blocker).where(Blocker.shipment_id == shipment.id)
            )).scalars().all()
        }

        active_types: set[str] = set()
        for finding in result.findings:
            key = finding.blocker_type.value
            active_types.add(key)
            blocker = existing.get(key)
            if blocker is None:
                db.add(Blocker(
                    shipment_id=shipment.id,
                    blocker_type=finding.blocker_type,
                    severity=finding.severity,
                    deadline=finding.deadline,
                    days_overdue=finding.days_overdue,
                    expected_state=finding.expected_state,
                    detected_at=now,
                ))
                result.opened += 1
                logger.info("Blocker %s opened on shipment %s (%s, %.2f days overdue)",
                            key, shipment.id, finding.severity.value, finding.days_overdue)
                continue

            if blocker.resolved_at is not None:
                blocker.resolved_at = None
                blocker.detected_at = now
                result.opened += 1
            else:
                result.updated += 1
            blocker.severity = finding.severity
            blocker.deadline = finding.deadline
            blocker.days_overdue = finding.days_overdue
            blocker.expected_state = finding.expected_state

        for key, blocker in existing.items():
            if key in active_types or blocker.resolved_at is not None:
                continue
            blocker.resolved_at = now
            result.resolved += 1
            logger.info("Blocker %s resolved on shipment %s", key, shipment.id)

        await db.flush()
        return result


def _value(member) -> str:
    return member.value if hasattr(member, "value") else str(member)
