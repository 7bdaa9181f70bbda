"""Tests for the cross-link validator: pure outcomes and link updates."""

import uuid

import pytest
from sqlalchemy import select

from shiplink.cross_link.service import CrossLinkValidator
from shiplink.cross_link.validator import (
    CrossLinkOutcome,
    extract_container_keys,
    extract_reference_keys,
    validate_link,
)
from shiplink.linking.index import IdentifierIndex, ShipmentRef
from shiplink.models.audit import AuditEvent
from shiplink.models.link import LinkSource, MatchType, ShipmentDocumentLink, ValidationStatus

S1 = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
S2 = uuid.UUID("00000000-0000-0000-0000-0000000000a2")

INDEX = IdentifierIndex.build([
    ShipmentRef(id=S1, booking_number="26123456", mbl_number="MEDU4455667", containers=("MAEU1234567",)),
    ShipmentRef(id=S2, booking_number="26999999", hbl_number="HBL0098", containers=("MSCU7654321",)),
])


class TestTokenExtraction:
    def test_reference_tokens_normalized(self):
        keys = extract_reference_keys("Booking no. 26123456, BL: medu-4455667.")
        assert {"26123456", "MEDU4455667"} <= keys

    def test_prefixed_reference_split_on_separators(self):
        keys = extract_reference_keys("Ref BKG/26123456, Booking No.26123456, MBL:MEDU4455667")
        assert {"26123456", "MEDU4455667"} <= keys

    def test_placeholder_words_ignored(self):
        assert "PENDING" not in extract_reference_keys("Status PENDING")

    def test_container_with_separators(self):
        assert extract_container_keys("cntr MAEU 123456-7 and mscu7654321") == {"MAEU1234567", "MSCU7654321"}


class TestValidateLink:
    """Outcome rules, including the removal asymmetry."""

    def test_own_booking_confirms(self):
        result = validate_link(S1, "Re: booking 26123456 SI cutoff", INDEX)
        assert result.outcome == CrossLinkOutcome.CONFIRMED
        assert result.own_references == ["26123456"]

    def test_own_reference_confirms_even_with_other_reference(self):
        result = validate_link(S1, "Bookings 26123456 and 26999999 combined", INDEX)
        assert result.outcome == CrossLinkOutcome.CONFIRMED

    def test_other_shipment_booking_contradicts(self):
        result = validate_link(S1, "Draft BL for booking 26999999 attached", INDEX)
        assert result.outcome == CrossLinkOutcome.CONTRADICTED
        assert result.foreign_references == {"26999999": [str(S2)]}

    def test_prefixed_own_booking_confirms_despite_other_hbl(self):
        for text in (
            "Ref BKG/26123456 consolidated with HBL0098",
            "Booking No.26123456 consolidated with HBL0098",
        ):
            result = validate_link(S1, text, INDEX)
            assert result.outcome == CrossLinkOutcome.CONFIRMED, text
            assert result.own_references == ["26123456"]

    def test_other_shipment_hbl_contradicts(self):
        result = validate_link(S1, "HBL0098 released", INDEX)
        assert result.outcome == CrossLinkOutcome.CONTRADICTED

    def test_no_identifiers_is_inconclusive(self):
        result = validate_link(S1, "Monthly statement attached, thanks", INDEX)
        assert result.outcome == CrossLinkOutcome.INCONCLUSIVE

    def test_empty_text_is_inconclusive(self):
        assert validate_link(S1, "", INDEX).outcome == CrossLinkOutcome.INCONCLUSIVE

    def test_container_mismatch_only_is_inconclusive(self):
        result = validate_link(S1, "Container MSCU7654321 gated in", INDEX)
        assert result.outcome == CrossLinkOutcome.INCONCLUSIVE
        assert "MSCU7654321" in result.foreign_containers

    def test_own_container_confirms(self):
        result = validate_link(S1, "Container MAEU1234567 gated in", INDEX)
        assert result.outcome == CrossLinkOutcome.CONFIRMED

    def test_own_container_with_other_booking_is_inconclusive(self):
        result = validate_link(S1, "MAEU1234567 under booking 26999999", INDEX)
        assert result.outcome == CrossLinkOutcome.INCONCLUSIVE

    def test_unknown_reference_does_not_contradict(self):
        result = validate_link(S1, "Booking 55555555 confirmed", INDEX)
        assert result.outcome == CrossLinkOutcome.INCONCLUSIVE

    def test_shipment_missing_from_index(self):
        result = validate_link(uuid.uuid4(), "Booking 26123456", INDEX)
        assert result.outcome == CrossLinkOutcome.INCONCLUSIVE


# ── CrossLinkValidator service (DB) ──


class TestCrossLinkValidatorService:
    async def _seed(self, db_session, make_shipment, make_document, body_text: str):
        s1 = make_shipment(booking_number="26123456")
        s2 = make_shipment(booking_number="26999999")
        doc = make_document(email_id="e-1", subject="Shipment update", body_text=body_text)
        db_session.add_all([s1, s2, doc])
        await db_session.flush()
        db_session.add(ShipmentDocumentLink(
            email_id="e-1",
            shipment_id=s1.id,
            match_type=MatchType.CONTAINER,
            matched_value="MAEU1234567",
            confidence=70,
            link_source=LinkSource.BACKFILL,
        ))
        await db_session.flush()
        index = IdentifierIndex.build([
            ShipmentRef(id=s1.id, booking_number="26123456"),
            ShipmentRef(id=s2.id, booking_number="26999999"),
        ])
        return s1, s2, index

    async def _link(self, db_session) -> ShipmentDocumentLink:
        return (await db_session.execute(
            select(ShipmentDocumentLink).where(ShipmentDocumentLink.email_id == "e-1")
        )).scalar_one()

    @pytest.mark.asyncio
    async def test_contradicted_link_removed_with_audit(self, db_session, make_shipment, make_document):
        _, _, index = await self._seed(db_session, make_shipment, make_document, "Booking 26999999 update")

        result = await CrossLinkValidator().validate(db_session, "e-1", index)

        assert result.outcome == CrossLinkOutcome.CONTRADICTED
        link = await self._link(db_session)
        assert link.is_active is False
        assert link.validation_status == ValidationStatus.REMOVED
        events = (await db_session.execute(
            select(AuditEvent).where(AuditEvent.event_type == "CROSS_LINK_REMOVED")
        )).scalars().all()
        assert len(events) == 1
        assert events[0].entity_id == "e-1"

    @pytest.mark.asyncio
    async def test_absence_only_flags(self, db_session, make_shipment, make_document):
        _, _, index = await self._seed(db_session, make_shipment, make_document, "Weekly report")

        await CrossLinkValidator().validate(db_session, "e-1", index)

        link = await self._link(db_session)
        assert link.is_active is True
        assert link.validation_status == ValidationStatus.FLAGGED

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, db_session, make_shipment, make_document):
        _, _, index = await self._seed(db_session, make_shipment, make_document, "Weekly report")
        validator = CrossLinkValidator()

        await validator.validate(db_session, "e-1", index)
        await validator.validate(db_session, "e-1", index)

        events = (await db_session.execute(
            select(AuditEvent).where(AuditEvent.event_type == "CROSS_LINK_FLAGGED")
        )).scalars().all()
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_confirmed_link_kept(self, db_session, make_shipment, make_document):
        _, _, index = await self._seed(db_session, make_shipment, make_document, "Booking 26123456 SI due")
        validator = CrossLinkValidator()

        assert await validator.active_links(db_session) == ["e-1"]
        result = await validator.validate(db_session, "e-1", index)

        assert result.outcome == CrossLinkOutcome.CONFIRMED
        link = await self._link(db_session)
        assert link.is_active is True
        assert link.validation_status == ValidationStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_removed_link_not_rechecked(self, db_session, make_shipment, make_document):
        _, _, index = await self._seed(db_session, make_shipment, make_document, "Booking 26999999 update")
        validator = CrossLinkValidator()

        await validator.validate(db_session, "e-1", index)

        assert await validator.active_links(db_session) == []
        assert await validator.validate(db_session, "e-1", index) is None
