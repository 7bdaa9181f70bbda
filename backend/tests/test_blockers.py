"""Tests for deadline blockers: pure detection and the BlockerService."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from shiplink.blockers.detectors import derive_blockers, is_open_shipment, severity_for
from shiplink.blockers.service import BlockerService
from shiplink.models.shipment import ShipmentStatus
from shiplink.models.workflow import Blocker, BlockerSeverity, BlockerType
from shiplink.workflow.states import DEFAULT_WORKFLOW_TABLE, Phase
from shiplink.workflow.timeline import Timeline, WorkflowEvent

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def derive(deadlines, reached=(), max_rank=None, now=NOW):
    return derive_blockers(deadlines, set(reached), max_rank, now, DEFAULT_WORKFLOW_TABLE)


def timeline_at(*states: tuple[str, int]) -> Timeline:
    events = [
        WorkflowEvent(f"e-{i}", code, Phase.PRE_DEPARTURE, rank, NOW - timedelta(days=10))
        for i, (code, rank) in enumerate(states)
    ]
    return Timeline(events=events, accepted=events)


class TestSeverity:
    def test_bands(self):
        assert severity_for(0.5) == BlockerSeverity.MEDIUM
        assert severity_for(1.0) == BlockerSeverity.HIGH
        assert severity_for(2.9) == BlockerSeverity.HIGH
        assert severity_for(3.0) == BlockerSeverity.CRITICAL

    def test_no_band_below_medium(self):
        assert severity_for(0.0) == BlockerSeverity.MEDIUM
        assert {s.value for s in BlockerSeverity} == {"medium", "high", "critical"}

    def test_custom_thresholds(self):
        assert severity_for(2.0, high_after_days=0.5, critical_after_days=2.0) == BlockerSeverity.CRITICAL


class TestDeriveBlockers:
    """Tests for the pure deadline check."""

    def test_vgm_cutoff_missed_three_days_is_critical(self):
        findings = derive(
            {"vgm_cutoff": NOW - timedelta(days=3)},
            reached=["booking_confirmation_received", "si_submitted"],
            max_rank=32,
        )
        assert len(findings) == 1
        finding = findings[0]
        assert finding.blocker_type == BlockerType.MISSING_VGM
        assert finding.severity == BlockerSeverity.CRITICAL
        assert finding.days_overdue == 3.0
        assert finding.expected_state == "vgm_submitted"

    def test_future_deadline_no_blocker(self):
        assert derive({"si_cutoff": NOW + timedelta(hours=1)}) == []

    def test_missing_deadline_no_blocker(self):
        assert derive({"si_cutoff": None, "vgm_cutoff": None}) == []

    def test_expected_state_reached_no_blocker(self):
        assert derive({"si_cutoff": NOW - timedelta(days=2)}, reached=["si_submitted"], max_rank=32) == []

    def test_later_rank_satisfies_deadline(self):
        # Gate-in seen without a VGM document still means the VGM step has passed
        assert derive({"vgm_cutoff": NOW - timedelta(days=5)}, reached=["gate_in_complete"], max_rank=70) == []

    def test_expected_state_seen_as_anomaly_satisfies(self):
        assert derive({"vgm_cutoff": NOW - timedelta(days=5)}, reached=["vgm_submitted"], max_rank=10) == []

    def test_all_three_deadlines(self):
        past = NOW - timedelta(hours=6)
        findings = derive({"si_cutoff": past, "vgm_cutoff": past, "cargo_cutoff": past})
        assert {f.blocker_type for f in findings} == set(BlockerType)
        assert all(f.severity == BlockerSeverity.MEDIUM for f in findings)

    def test_naive_deadline_treated_as_utc(self):
        findings = derive({"si_cutoff": (NOW - timedelta(days=1)).replace(tzinfo=None)})
        assert findings[0].days_overdue == 1.0


class TestIsOpenShipment:
    def test_open_in_transit(self):
        assert is_open_shipment(ShipmentStatus.OPEN, "in_transit") is True

    def test_closed_or_delivered(self):
        assert is_open_shipment(ShipmentStatus.CLOSED, None) is False
        assert is_open_shipment(ShipmentStatus.DELIVERED, "arrival") is False
        assert is_open_shipment("cancelled", None) is False

    def test_delivery_phase(self):
        assert is_open_shipment(ShipmentStatus.OPEN, Phase.DELIVERY) is False


# ── BlockerService (DB) ──


class TestBlockerService:
    """Tests for blocker persistence against SQLite."""

    async def _shipment(self, db_session, make_shipment, **fields):
        shipment = make_shipment(booking_number="26123456", **fields)
        db_session.add(shipment)
        await db_session.flush()
        return shipment

    @pytest.mark.asyncio
    async def test_opens_blocker(self, db_session, test_settings, make_shipment):
        shipment = await self._shipment(db_session, make_shipment, vgm_cutoff=NOW - timedelta(days=3))

        result = await BlockerService(test_settings).sync(db_session, shipment, timeline_at(), now=NOW)

        assert result.opened == 1
        blocker = (await db_session.execute(select(Blocker))).scalar_one()
        assert blocker.blocker_type == BlockerType.MISSING_VGM
        assert blocker.severity == BlockerSeverity.CRITICAL
        assert blocker.resolved_at is None

    @pytest.mark.asyncio
    async def test_rerun_updates_in_place(self, db_session, test_settings, make_shipment):
        shipment = await self._shipment(db_session, make_shipment, si_cutoff=NOW - timedelta(hours=12))
        service = BlockerService(test_settings)

        await service.sync(db_session, shipment, timeline_at(), now=NOW)
        result = await service.sync(db_session, shipment, timeline_at(), now=NOW + timedelta(days=1))

        assert result.opened == 0
        assert result.updated == 1
        blocker = (await db_session.execute(select(Blocker))).scalar_one()
        assert blocker.severity == BlockerSeverity.HIGH
        assert blocker.days_overdue == 1.5

    @pytest.mark.asyncio
    async def test_resolves_when_state_arrives(self, db_session, test_settings, make_shipment):
        shipment = await self._shipment(db_session, make_shipment, si_cutoff=NOW - timedelta(days=1))
        service = BlockerService(test_settings)
        await service.sync(db_session, shipment, timeline_at(), now=NOW)

        result = await service.sync(db_session, shipment, timeline_at(("si_submitted", 32)), now=NOW)

        assert result.resolved == 1
        blocker = (await db_session.execute(select(Blocker))).scalar_one()
        assert blocker.resolved_at is not None

    @pytest.mark.asyncio
    async def test_resolved_blocker_reopens(self, db_session, test_settings, make_shipment):
        shipment = await self._shipment(db_session, make_shipment, si_cutoff=NOW - timedelta(days=1))
        service = BlockerService(test_settings)
        await service.sync(db_session, shipment, timeline_at(), now=NOW)
        await service.sync(db_session, shipment, timeline_at(("si_submitted", 32)), now=NOW)

        result = await service.sync(db_session, shipment, timeline_at(), now=NOW)

        assert result.opened == 1
        blocker = (await db_session.execute(select(Blocker))).scalar_one()
        assert blocker.resolved_at is None

    @pytest.mark.asyncio
    async def test_closed_shipment_resolves_open_blockers(self, db_session, test_settings, make_shipment):
        shipment = await self._shipment(db_session, make_shipment, cargo_cutoff=NOW - timedelta(days=4))
        service = BlockerService(test_settings)
        await service.sync(db_session, shipment, timeline_at(), now=NOW)

        shipment.status = ShipmentStatus.CLOSED
        result = await service.sync(db_session, shipment, timeline_at(), now=NOW)

        assert result.findings == []
        assert result.resolved == 1
