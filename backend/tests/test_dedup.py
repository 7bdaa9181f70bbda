"""Tests for content fingerprinting and per-thread duplicate assignment."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from shiplink.dedup.fingerprint import (
    ThreadMessage,
    assign_duplicates,
    compute_fingerprint,
    normalize_content,
    reply_depth,
)
from shiplink.dedup.service import Deduplicator
from shiplink.models.document import ClassifiedDocument

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

ORIGINAL = """Dear team,

Please find attached the booking confirmation for 26123456.
Vessel: MSC ANNA  ETD 12-Mar

Regards,
Ops
"""

FORWARDED = """---------- Forwarded message ---------
From: Carrier Desk <desk@carrier.example>
Date: Sun, 1 Mar 2026 09:00
Subject: Booking confirmation 26123456
To: ops@forwarder.example

> Dear team,
>
> Please find attached the booking confirmation for 26123456.
> Vessel: MSC ANNA  ETD 12-Mar
>
> Regards,
> Ops
"""


class TestNormalizeContent:
    """Tests for boilerplate stripping."""

    def test_collapses_whitespace_and_lowercases(self):
        assert normalize_content("Hello\n\n   WORLD\t!") == "hello world !"

    def test_forward_headers_and_quotes_removed(self):
        assert normalize_content(FORWARDED) == normalize_content(ORIGINAL)

    def test_signature_dropped(self):
        with_sig = ORIGINAL + "-- \nJane Doe\nOps Manager\n+1 555 0100\n"
        assert normalize_content(with_sig) == normalize_content(ORIGINAL)

    def test_disclaimer_dropped(self):
        with_disclaimer = ORIGINAL + (
            "\nThis email and any attachments are confidential and intended solely for the addressee.\n"
            "If you are not the intended recipient please delete it.\n"
        )
        assert normalize_content(with_disclaimer) == normalize_content(ORIGINAL)

    def test_external_banner_dropped(self):
        bannered = "[EXTERNAL] This message came from outside your organization.\n" + ORIGINAL
        assert normalize_content(bannered) == normalize_content(ORIGINAL)

    def test_reply_attribution_dropped(self):
        reply = "On Sun, 1 Mar 2026 at 09:00, Carrier Desk wrote:\n" + ORIGINAL
        assert normalize_content(reply) == normalize_content(ORIGINAL)


class TestComputeFingerprint:
    def test_same_content_same_fingerprint(self):
        assert compute_fingerprint(ORIGINAL) == compute_fingerprint(FORWARDED)

    def test_attachment_text_contributes(self):
        assert compute_fingerprint(ORIGINAL, "invoice 1") != compute_fingerprint(ORIGINAL, "invoice 2")

    def test_empty_content_uses_upstream_fingerprint(self):
        assert compute_fingerprint("  \n ", None, fallback="upstream-abc") == "upstream-abc"

    def test_empty_content_without_fallback(self):
        assert compute_fingerprint(None, None) is None


class TestReplyDepth:
    def test_counts_stacked_markers(self):
        assert reply_depth("RE: FW: Re: Booking 26123456") == 3

    def test_no_markers(self):
        assert reply_depth("Booking 26123456") == 0
        assert reply_depth(None) == 0


class TestAssignDuplicates:
    """Tests for the pure grouping function."""

    def test_earlier_copy_is_primary(self):
        messages = [
            ThreadMessage("email-b", T0 + timedelta(minutes=3), "FW: Booking", "fp1"),
            ThreadMessage("email-a", T0, "Booking", "fp1"),
        ]
        result = {a.email_id: a for a in assign_duplicates(messages)}
        assert result["email-a"].is_primary is True
        assert result["email-b"].is_primary is False
        assert result["email-b"].duplicate_of == "email-a"

    def test_exactly_one_primary_per_group(self):
        messages = [
            ThreadMessage(f"email-{i}", T0 + timedelta(minutes=i), None, "fp1" if i % 2 else "fp2")
            for i in range(6)
        ]
        result = assign_duplicates(messages)
        for fp in ("fp1", "fp2"):
            assert sum(1 for a in result if a.fingerprint == fp and a.is_primary) == 1

    def test_same_timestamp_prefers_shallower_reply(self):
        messages = [
            ThreadMessage("email-a", T0, "RE: Booking", "fp1"),
            ThreadMessage("email-b", T0, "Booking", "fp1"),
        ]
        result = {a.email_id: a for a in assign_duplicates(messages)}
        assert result["email-b"].is_primary is True

    def test_full_tie_broken_by_email_id(self):
        messages = [ThreadMessage("email-z", T0, None, "fp1"), ThreadMessage("email-a", T0, None, "fp1")]
        result = {a.email_id: a for a in assign_duplicates(messages)}
        assert result["email-a"].is_primary is True

    def test_idempotent_regardless_of_input_order(self):
        messages = [
            ThreadMessage("email-1", T0, "Booking", "fp1"),
            ThreadMessage("email-2", T0, "FW: Booking", "fp1"),
            ThreadMessage("email-3", T0 + timedelta(minutes=1), None, "fp2"),
            ThreadMessage("email-4", T0 + timedelta(minutes=2), None, "fp1"),
        ]
        first = assign_duplicates(messages)
        second = assign_duplicates(list(reversed(messages)))
        assert first == second

    def test_missing_fingerprint_is_own_group(self):
        messages = [ThreadMessage("email-a", T0, None, None), ThreadMessage("email-b", T0, None, None)]
        assert all(a.is_primary for a in assign_duplicates(messages))

    def test_thread_position_follows_received_order(self):
        messages = [
            ThreadMessage("late", T0 + timedelta(hours=1), None, "x"),
            ThreadMessage("early", T0, None, "y"),
        ]
        positions = {a.email_id: a.thread_position for a in assign_duplicates(messages)}
        assert positions == {"early": 0, "late": 1}


# ── Deduplicator service (DB) ──


class TestDeduplicatorService:
    """Tests for the Deduplicator against SQLite."""

    @pytest.mark.asyncio
    async def test_marks_forwarded_copy_as_duplicate(self, db_session, make_document):
        original = make_document(email_id="e-1", received_at=T0, subject="Booking", body_text=ORIGINAL)
        forward = make_document(
            email_id="e-2", received_at=T0 + timedelta(minutes=3), subject="FW: Booking", body_text=FORWARDED
        )
        other = make_document(email_id="e-3", received_at=T0 + timedelta(minutes=5), body_text="Different")
        db_session.add_all([original, forward, other])
        await db_session.flush()

        result = await Deduplicator().deduplicate_thread(db_session, "thread-1")

        assert result.documents == 3
        assert result.duplicate_groups == 1
        assert result.duplicates == 1
        docs = {
            d.email_id: d
            for d in (await db_session.execute(select(ClassifiedDocument))).scalars().all()
        }
        assert docs["e-1"].is_primary is True
        assert docs["e-2"].is_primary is False
        assert docs["e-2"].duplicate_of == "e-1"
        assert docs["e-3"].is_primary is True
        assert docs["e-1"].content_fingerprint == docs["e-2"].content_fingerprint

    @pytest.mark.asyncio
    async def test_rerun_gives_same_assignment(self, db_session, make_document):
        db_session.add_all([
            make_document(email_id="e-1", received_at=T0, body_text=ORIGINAL),
            make_document(email_id="e-2", received_at=T0, subject="RE: x", body_text=ORIGINAL),
        ])
        await db_session.flush()
        dedup = Deduplicator()

        await dedup.deduplicate_thread(db_session, "thread-1")
        first = {
            d.email_id: (d.is_primary, d.duplicate_of)
            for d in (await db_session.execute(select(ClassifiedDocument))).scalars().all()
        }
        await dedup.deduplicate_thread(db_session, "thread-1")
        second = {
            d.email_id: (d.is_primary, d.duplicate_of)
            for d in (await db_session.execute(select(ClassifiedDocument))).scalars().all()
        }
        assert first == second
        assert first["e-1"] == (True, None)

    @pytest.mark.asyncio
    async def test_threads_are_independent(self, db_session, make_document):
        db_session.add_all([
            make_document(email_id="e-1", thread_id="t-a", body_text=ORIGINAL),
            make_document(email_id="e-2", thread_id="t-b", body_text=ORIGINAL),
        ])
        await db_session.flush()

        dedup = Deduplicator()
        assert await dedup.thread_ids(db_session) == ["t-a", "t-b"]
        result = await dedup.deduplicate_thread(db_session, "t-b")
        assert result.duplicates == 0
